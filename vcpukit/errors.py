"""Exceptions raised by the virtual CPU abstraction."""


class VCpuError(Exception):
    """Base class for all errors reported by virtual CPU operations."""


class BadStateError(VCpuError):
    """An operation was attempted while an object was in the wrong state."""