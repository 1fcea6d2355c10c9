# DmiStag - Metadata model
"""
Structured description of a DMI metadata block.

These records describe the grammar level only: names, counts, timing and
annotations of every icon state, without any pixel data. Optional keys keep
their presence (``None`` = key absent) so the serializer can tell an unset
field from one explicitly set to its default.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from .dirs import VALID_DIR_COUNTS
from .errors import MalformedMetadata
from .grammar import check_name

_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)$")


@dataclass(frozen=True, order=True)
class DmiVersion:
    """Format version as a ``major.minor`` pair."""

    major: int = 4
    minor: int = 0

    @classmethod
    def parse(cls, text: str) -> DmiVersion:
        """
        Parses a version string such as ``"4.0"``.

        :param text: The version text
        :return: The version
        :raises MalformedMetadata: If the text is no ``major.minor`` pair
        """
        match = _VERSION_PATTERN.match(text)
        if match is None:
            raise MalformedMetadata(f"Invalid format version {text!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class Hotspot:
    """A marked pixel of a frame, e.g. the click position of a cursor.

    :ivar x: Horizontal position in pixels
    :ivar y: Vertical position in pixels, counted upwards from the bottom row
    :ivar index: 1-based image number within the state, in flattened order
    """

    x: int
    y: int
    index: int = 1


@dataclass
class StateMetadata:
    """Grammar-level description of one icon state."""

    name: str
    dirs: int = 1
    frames: int = 1
    delay: list[float] | None = None
    loop: int | None = None
    rewind: bool | None = None
    movement: bool | None = None
    hotspots: list[Hotspot] = field(default_factory=list)
    extra: list[tuple[str, str]] = field(default_factory=list)
    "Unknown ``key = value`` pairs, kept verbatim and in order"
    line: int | None = field(default=None, compare=False, repr=False)
    "Line of the ``state`` key, if parsed from text"

    @property
    def image_count(self) -> int:
        """Number of images (grid cells) the state occupies."""
        return self.dirs * self.frames

    @property
    def delays(self) -> list[float]:
        """The frame delays, all 1.0 if the delay key is absent."""
        if self.delay is None:
            return [1.0] * self.frames
        return list(self.delay)

    @property
    def loop_count(self) -> int:
        """Number of loops, 0 meaning infinite."""
        return self.loop or 0

    def validate(self, state_index: int | None = None) -> None:
        """
        Checks the structural invariants of the state.

        :param state_index: Position of the state, used as error context
        :raises MalformedMetadata: If an invariant is violated
        """
        context = {"state": self.name, "state_index": state_index, "line": self.line}
        check_name(self.name, **context)
        if self.dirs not in VALID_DIR_COUNTS:
            raise MalformedMetadata(
                f"dirs must be one of {VALID_DIR_COUNTS}, got {self.dirs}", **context
            )
        if self.frames < 1:
            raise MalformedMetadata(f"frames must be at least 1, got {self.frames}", **context)
        if self.delay is not None:
            if len(self.delay) != self.frames:
                raise MalformedMetadata(
                    f"{self.frames} frames declared but {len(self.delay)} delays given",
                    **context,
                )
            for frame, value in enumerate(self.delay):
                if not math.isfinite(value) or value < 0:
                    raise MalformedMetadata(
                        f"Invalid delay {value}", frame=frame, **context
                    )
        if self.loop is not None and self.loop < 0:
            raise MalformedMetadata(f"loop must not be negative, got {self.loop}", **context)
        for hotspot in self.hotspots:
            if not 1 <= hotspot.index <= self.image_count:
                raise MalformedMetadata(
                    f"Hotspot refers to image {hotspot.index} but the state has "
                    f"{self.image_count} images",
                    **context,
                )


@dataclass
class DmiMetadata:
    """Grammar-level description of a complete metadata block."""

    version: DmiVersion = field(default_factory=DmiVersion)
    cell_width: int = 32
    cell_height: int = 32
    states: list[StateMetadata] = field(default_factory=list)
    extra: list[tuple[str, str]] = field(default_factory=list)
    "Unknown header entries, kept verbatim and in order"

    @property
    def image_count(self) -> int:
        """Number of images over all states."""
        return sum(state.image_count for state in self.states)

    def shapes(self) -> list[tuple[int, int]]:
        """Returns ``(dirs, frames)`` of every state in declaration order."""
        return [(state.dirs, state.frames) for state in self.states]

    def find(self, name: str) -> list[StateMetadata]:
        """Returns all states with the given name."""
        return [state for state in self.states if state.name == name]


__all__ = ["DmiVersion", "Hotspot", "StateMetadata", "DmiMetadata"]
