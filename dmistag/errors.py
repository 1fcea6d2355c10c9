# DmiStag - Errors
"""
Exception hierarchy of the DMI codec.

Every error may carry structural context (metadata line, state, direction
and frame) so defects in real-world files can be located.
"""

from __future__ import annotations


class DmiError(Exception):
    """Base class of all errors raised by the codec.

    :ivar line: 1-based line of the metadata block the error refers to
    :ivar state: Name of the icon state involved
    :ivar state_index: Position of the icon state within the document
    :ivar direction: Direction index within the state
    :ivar frame: Frame index within the direction
    """

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        state: str | None = None,
        state_index: int | None = None,
        direction: int | None = None,
        frame: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.line = line
        self.state = state
        self.state_index = state_index
        self.direction = direction
        self.frame = frame

    def context(self) -> dict[str, int | str]:
        """Returns the context attributes which are set."""
        items = {
            "line": self.line,
            "state": self.state,
            "state_index": self.state_index,
            "direction": self.direction,
            "frame": self.frame,
        }
        return {key: value for key, value in items.items() if value is not None}

    def __str__(self) -> str:
        context = self.context()
        if not context:
            return self.message
        details = ", ".join(
            f"{key}={value!r}" if key == "state" else f"{key}={value}"
            for key, value in context.items()
        )
        return f"{self.message} ({details})"


class MalformedMetadata(DmiError):
    """The metadata block violates the DMI grammar or a state invariant."""


class UnsupportedVersion(MalformedMetadata):
    """The metadata declares a format version the parser does not know."""


class UnexpectedEndOfInput(DmiError):
    """The metadata block ends before it is complete."""


class GeometryMismatch(DmiError):
    """Image, cell and frame dimensions do not fit together."""


class RasterDecodeError(DmiError):
    """The raster container could not be decoded."""


class RasterEncodeError(DmiError):
    """The raster container could not be encoded."""


__all__ = [
    "DmiError",
    "MalformedMetadata",
    "UnsupportedVersion",
    "UnexpectedEndOfInput",
    "GeometryMismatch",
    "RasterDecodeError",
    "RasterEncodeError",
]
