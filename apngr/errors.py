"""
Exceptions raised by apngr. I/O failures are left as the builtin OSError family.
"""

__all__ = (
    "ApngrError",
    "DecodeError",
    "EncodeError",
    "ConfigurationError",
)


class ApngrError(Exception):
    """
    Base class for all apngr errors.
    """
    pass


class DecodeError(ApngrError):
    """
    Raised when a source container (GIF, APNG) is malformed.
    """
    pass


class EncodeError(ApngrError):
    """
    Raised when an animation sequence cannot be written as an APNG.
    """
    pass


class ConfigurationError(ApngrError):
    """
    Raised on invalid options or frame descriptors.
    """
    pass
