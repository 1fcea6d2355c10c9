# DmiStag - IconState
"""
In-memory icon states: named animations made of per-direction frame
sequences.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field, replace
from typing import Iterator, Sequence

import numpy as np

from .compositor import RGBA_CHANNELS, check_rgba
from .dirs import VALID_DIR_COUNTS, Dirs, dir_to_index, directions_for
from .errors import GeometryMismatch, MalformedMetadata
from .geometry import iter_state_cells
from .grammar import check_name
from .metadata import Hotspot, StateMetadata


def _check_delay(value: float, **context) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise MalformedMetadata(f"Invalid delay {value}", **context)
    return value


@dataclass(eq=False)
class Frame:
    """One image of an animation plus its timing.

    :ivar image: ``(height, width, 4)`` uint8 RGBA pixels, owned by the frame
    :ivar delay: Display time in ticks
    :ivar hotspots: Marked pixels of this image
    """

    image: np.ndarray
    delay: float = 1.0
    hotspots: list[Hotspot] = field(default_factory=list)

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]

    def pixels_equal(self, other: Frame) -> bool:
        """Returns if both frames hold identical pixels."""
        return self.image.shape == other.image.shape and bool(
            np.array_equal(self.image, other.image)
        )

    def copy(self) -> Frame:
        """Returns a deep copy of the frame."""
        return Frame(self.image.copy(), self.delay, list(self.hotspots))

    @classmethod
    def blank(cls, width: int, height: int, delay: float = 1.0) -> Frame:
        """Creates a fully transparent frame."""
        return cls(np.zeros((height, width, RGBA_CHANNELS), dtype=np.uint8), delay)


class IconState:
    """
    A named animation of a DMI document.

    Every direction holds the same number of frames and the frames sharing
    an index share one delay. Mutators check these invariants immediately.

    :param name: The state name, duplicates within a document are allowed
    :param directions: One frame sequence per direction (1, 4 or 8), in
        on-disk direction order, see :data:`~dmistag.dirs.DIR_ORDERING`
    :param loop: Number of loops (0 = infinite), ``None`` if unset
    :param rewind: Play forward then backward, ``None`` if unset
    :param movement: Movement state flag, ``None`` if unset
    :param extra: Unknown metadata entries to keep
    """

    def __init__(
        self,
        name: str,
        directions: Sequence[Sequence[Frame]],
        loop: int | None = None,
        rewind: bool | None = None,
        movement: bool | None = None,
        extra: Sequence[tuple[str, str]] | None = None,
    ):
        self.name = name
        self.directions: list[list[Frame]] = [list(frames) for frames in directions]
        self.loop = loop
        self.rewind = rewind
        self.movement = movement
        self.extra: list[tuple[str, str]] = list(extra or [])
        self.validate()

    def __repr__(self) -> str:
        return (
            f"IconState(name={self.name!r}, dirs={self.dirs}, frames={self.frame_count})"
        )

    @property
    def name(self) -> str:
        """The state name. Any text without line breaks."""
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = check_name(value)

    # --- Shape ---

    @property
    def dirs(self) -> int:
        """Number of directions."""
        return len(self.directions)

    @property
    def frame_count(self) -> int:
        """Number of frames per direction."""
        return len(self.directions[0]) if self.directions else 0

    @property
    def image_count(self) -> int:
        """Number of images over all directions."""
        return self.dirs * self.frame_count

    @property
    def cell_size(self) -> tuple[int, int]:
        """Size ``(width, height)`` of the state's images."""
        first = self.directions[0][0]
        return first.width, first.height

    @property
    def loop_count(self) -> int:
        """Number of loops, 0 meaning infinite."""
        return self.loop or 0

    @property
    def delays(self) -> list[float]:
        """The delay of every frame index."""
        return [frame.delay for frame in self.directions[0]]

    def validate(self, cell_width: int | None = None, cell_height: int | None = None,
                 state_index: int | None = None) -> None:
        """
        Checks all invariants of the state.

        :param cell_width: Required image width, if known
        :param cell_height: Required image height, if known
        :param state_index: Position in the document, used as error context
        :raises MalformedMetadata: On a structural violation
        :raises GeometryMismatch: On an image size violation
        """
        context = {"state": self.name, "state_index": state_index}
        check_name(self.name, **context)
        if self.dirs not in VALID_DIR_COUNTS:
            raise MalformedMetadata(
                f"A state needs {', '.join(map(str, VALID_DIR_COUNTS))} directions, "
                f"got {self.dirs}",
                **context,
            )
        frames = len(self.directions[0])
        if frames < 1:
            raise MalformedMetadata("Every direction needs at least one frame", **context)
        for direction, sequence in enumerate(self.directions):
            if len(sequence) != frames:
                raise MalformedMetadata(
                    f"Direction {direction} has {len(sequence)} frames, expected {frames}",
                    direction=direction,
                    **context,
                )
        if self.loop is not None and self.loop < 0:
            raise MalformedMetadata(f"loop must not be negative, got {self.loop}", **context)
        if cell_width is None or cell_height is None:
            cell_width, cell_height = self.cell_size
        for direction, sequence in enumerate(self.directions):
            for index, frame in enumerate(sequence):
                check_rgba(
                    frame.image, cell_width, cell_height,
                    direction=direction, frame=index, **context,
                )
                _check_delay(frame.delay, direction=direction, frame=index, **context)
                if frame.delay != self.directions[0][index].delay:
                    raise MalformedMetadata(
                        f"Directions disagree on the delay of frame {index}",
                        direction=direction,
                        frame=index,
                        **context,
                    )

    # --- Access ---

    def get_frame(self, direction: Dirs | int, frame: int) -> Frame:
        """
        Returns one frame.

        :param direction: A :class:`Dirs` value or direction index
        :param frame: The frame index
        :raises IndexError: If the direction or frame does not exist
        """
        try:
            index = dir_to_index(direction, self.dirs)
        except ValueError as exc:
            raise IndexError(f"{exc} (state {self.name!r})") from None
        if not 0 <= frame < self.frame_count:
            raise IndexError(
                f"Frame {frame} out of range, state {self.name!r} has {self.frame_count}"
            )
        return self.directions[index][frame]

    def iter_frames(self) -> Iterator[tuple[Dirs, int, Frame]]:
        """Yields ``(direction, frame index, frame)`` in storage order."""
        available = directions_for(self.dirs)
        for direction, index in iter_state_cells(self.dirs, self.frame_count):
            yield available[direction], index, self.directions[direction][index]

    def flat_frames(self) -> list[Frame]:
        """Returns all frames in storage order."""
        return [frame for _, _, frame in self.iter_frames()]

    # --- Mutation ---

    def set_dirs(self, dirs: int) -> None:
        """
        Changes the direction count.

        Reducing keeps the leading directions (8 -> 4 keeps the cardinals,
        4 -> 1 keeps south). Growing requires frame data which does not
        exist and is rejected; use :meth:`set_directions` instead.

        :raises MalformedMetadata: If ``dirs`` is invalid or larger than now
        """
        if dirs not in VALID_DIR_COUNTS:
            raise MalformedMetadata(
                f"dirs must be one of {VALID_DIR_COUNTS}, got {dirs}", state=self.name
            )
        if dirs > self.dirs:
            raise MalformedMetadata(
                f"Cannot grow from {self.dirs} to {dirs} directions without frames",
                state=self.name,
            )
        del self.directions[dirs:]

    def set_directions(self, directions: Sequence[Sequence[Frame]]) -> None:
        """
        Replaces all frame sequences at once, e.g. to grow the direction count.

        :raises MalformedMetadata: If the new sequences violate the invariants
        """
        previous = self.directions
        self.directions = [list(frames) for frames in directions]
        try:
            self.validate()
        except (MalformedMetadata, GeometryMismatch):
            self.directions = previous
            raise

    def set_delays(self, delays: Sequence[float]) -> None:
        """
        Sets the delay of every frame index.

        :raises MalformedMetadata: If the count differs from the frame count
            or a delay is invalid
        """
        if len(delays) != self.frame_count:
            raise MalformedMetadata(
                f"{len(delays)} delays given for {self.frame_count} frames", state=self.name
            )
        values = [
            _check_delay(value, state=self.name, frame=index)
            for index, value in enumerate(delays)
        ]
        for sequence in self.directions:
            for frame, value in zip(sequence, values):
                frame.delay = value

    def set_delay(self, frame: int, delay: float) -> None:
        """Sets the delay of one frame index in every direction."""
        if not 0 <= frame < self.frame_count:
            raise IndexError(f"Frame {frame} out of range for state {self.name!r}")
        delay = _check_delay(delay, state=self.name, frame=frame)
        for sequence in self.directions:
            sequence[frame].delay = delay

    def append_frame(self, images: Sequence[np.ndarray], delay: float = 1.0,
                     index: int | None = None) -> None:
        """
        Adds one frame to every direction.

        :param images: One image per direction, in direction order
        :param delay: The new frame's delay
        :param index: Insert position from 0 to the frame count, appended if ``None``
        :raises MalformedMetadata: If the number of images differs from dirs
        :raises GeometryMismatch: If an image has the wrong size
        :raises IndexError: If ``index`` is out of range
        """
        if len(images) != self.dirs:
            raise MalformedMetadata(
                f"{len(images)} images given for {self.dirs} directions", state=self.name
            )
        delay = _check_delay(delay, state=self.name)
        width, height = self.cell_size
        for direction, image in enumerate(images):
            check_rgba(image, width, height, state=self.name, direction=direction)
        position = self.frame_count if index is None else index
        if not 0 <= position <= self.frame_count:
            raise IndexError(f"Insert position {index} out of range for state {self.name!r}")
        for sequence, image in zip(self.directions, images):
            sequence.insert(position, Frame(image.copy(), delay))

    def remove_frame(self, index: int) -> None:
        """
        Removes one frame index from every direction.

        :raises MalformedMetadata: If it is the last frame
        """
        if not 0 <= index < self.frame_count:
            raise IndexError(f"Frame {index} out of range for state {self.name!r}")
        if self.frame_count == 1:
            raise MalformedMetadata("Cannot remove the last frame", state=self.name)
        for sequence in self.directions:
            del sequence[index]

    def copy(self) -> IconState:
        """Returns a deep copy of the state."""
        return IconState(
            self.name,
            [[frame.copy() for frame in sequence] for sequence in self.directions],
            loop=self.loop,
            rewind=self.rewind,
            movement=self.movement,
            extra=copy.deepcopy(self.extra),
        )

    # --- Conversion ---

    def to_metadata(self) -> StateMetadata:
        """Builds the grammar-level description of this state."""
        hotspots = []
        for number, frame in enumerate(self.flat_frames(), start=1):
            hotspots.extend(replace(hotspot, index=number) for hotspot in frame.hotspots)
        return StateMetadata(
            name=self.name,
            dirs=self.dirs,
            frames=self.frame_count,
            delay=self.delays,
            loop=self.loop,
            rewind=self.rewind,
            movement=self.movement,
            hotspots=hotspots,
            extra=list(self.extra),
        )

    @classmethod
    def from_metadata(cls, metadata: StateMetadata, images: Sequence[np.ndarray],
                      state_index: int | None = None) -> IconState:
        """
        Assembles a state from its description and its images.

        :param metadata: The grammar-level description
        :param images: The state's images in storage order
        :param state_index: Position in the document, used as error context
        :raises GeometryMismatch: If the image count does not match
        """
        metadata.validate(state_index=state_index)
        if len(images) != metadata.image_count:
            raise GeometryMismatch(
                f"State needs {metadata.image_count} images, got {len(images)}",
                state=metadata.name,
                state_index=state_index,
            )
        delays = metadata.delays
        directions: list[list[Frame | None]] = [
            [None] * metadata.frames for _ in range(metadata.dirs)
        ]
        flat = []
        for (direction, index), image in zip(
            iter_state_cells(metadata.dirs, metadata.frames), images
        ):
            frame = Frame(image, delays[index])
            directions[direction][index] = frame
            flat.append(frame)
        for hotspot in metadata.hotspots:
            flat[hotspot.index - 1].hotspots.append(hotspot)
        return cls(
            metadata.name,
            directions,
            loop=metadata.loop,
            rewind=metadata.rewind,
            movement=metadata.movement,
            extra=metadata.extra,
        )

    @classmethod
    def blank(cls, name: str, width: int, height: int, dirs: int = 1, frames: int = 1,
              delay: float = 1.0, **params) -> IconState:
        """
        Creates a transparent state.

        :param name: The state name
        :param width: Image width
        :param height: Image height
        :param dirs: Direction count
        :param frames: Frames per direction
        :param delay: Delay of every frame
        :param params: Further :class:`IconState` parameters
        """
        directions = [
            [Frame.blank(width, height, delay) for _ in range(frames)]
            for _ in range(dirs)
        ]
        return cls(name, directions, **params)


__all__ = ["Frame", "IconState"]
