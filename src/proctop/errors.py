"""Exceptions raised by proctop counter sources."""


class ProctopError(Exception):
    """Base class for proctop errors."""


class SourceUnavailable(ProctopError):
    """The counter interface could not be opened this cycle."""


class MalformedSample(ProctopError):
    """A counter read returned data that does not parse into numeric fields."""
