"""Exceptions raised by the interchange codec."""


class InterchangeError(Exception):
    """Base exception for interchange errors."""
    pass


class FormatError(InterchangeError):
    """Input is not in a recognized or structurally valid format."""
    pass


class MissingAssetError(InterchangeError):
    """Target format needs an image that could not be resolved."""
    pass


class ParseError(InterchangeError):
    """Embedded JSON or text payload is malformed."""
    pass
