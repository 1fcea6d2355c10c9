# DmiStag - DmiDocument
"""
Implements the class :class:`.DmiDocument`, the in-memory representation of a
DMI file, and the load / save pipelines connecting the raster adapter,
the metadata grammar, the grid geometry and the compositor.

Load: PNG -> pixels + metadata text -> :class:`DmiMetadata` -> grid layout
-> sliced images -> :class:`IconState` objects.

Save: states -> packed sheet + layout -> metadata text -> PNG.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from pathlib import Path
from typing import BinaryIO, Iterator, Sequence, Union

import numpy as np

from .compositor import pack_frames, slice_frames
from .config import settings
from .errors import GeometryMismatch, MalformedMetadata
from .geometry import GridLayout, plan_layout, resolve_grid
from .icon_state import IconState
from .metadata import DmiMetadata, DmiVersion
from .parser import parse_metadata
from .raster import RasterData, decode_raster, encode_raster, read_raster_info
from .serializer import serialize_metadata

logger = logging.getLogger(__name__)

DmiSourceTypes = Union[bytes, str, Path, BinaryIO]
"The valid source types for loading a DMI file"


def _read_source(source: DmiSourceTypes) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, (str, Path)):
        with open(source, "rb") as f:
            return f.read()
    return source.read()


def _extract_metadata_text(text_chunks: dict[str, str], keyword: str) -> str:
    if keyword not in text_chunks:
        raise MalformedMetadata(f"PNG has no {keyword!r} text chunk with DMI metadata")
    return text_chunks[keyword]


def read_metadata(source: DmiSourceTypes, keyword: str | None = None, **params) -> DmiMetadata:
    """
    Reads only the metadata of a DMI file, without slicing its pixels.

    The metadata is still checked against the image size.

    :param source: The file content, a file name or a binary file object
    :param keyword: Text chunk holding the metadata, see
        :class:`~dmistag.config.Settings`
    :param params: Overrides passed to :class:`~dmistag.parser.MetadataParser`
    :return: The structured description
    """
    keyword = keyword or settings.METADATA_KEYWORD
    width, height, text_chunks = read_raster_info(_read_source(source))
    metadata = parse_metadata(_extract_metadata_text(text_chunks, keyword), **params)
    resolve_grid(width, height, metadata.cell_width, metadata.cell_height, metadata.shapes())
    return metadata


class DmiDocument:
    """
    A DMI icon file: an ordered collection of :class:`IconState` objects
    sharing one cell size.

    States are owned exclusively by their document. State names do not have
    to be unique; :meth:`find_state` and :meth:`duplicate_names` make
    duplicates discoverable.

    :param cell_width: Width of every image, from settings if omitted
    :param cell_height: Height of every image, from settings if omitted
    :param states: Initial states
    :param version: The format version
    :param text_chunks: Further PNG text chunks to write on save
    :param extra: Unknown header entries to keep
    """

    def __init__(
        self,
        cell_width: int | None = None,
        cell_height: int | None = None,
        states: Sequence[IconState] | None = None,
        version: DmiVersion | None = None,
        text_chunks: dict[str, str] | None = None,
        extra: Sequence[tuple[str, str]] | None = None,
    ):
        self.cell_width = cell_width or settings.DEFAULT_CELL_WIDTH
        "Width of every image in pixels"
        self.cell_height = cell_height or settings.DEFAULT_CELL_HEIGHT
        "Height of every image in pixels"
        if self.cell_width < 1 or self.cell_height < 1:
            raise GeometryMismatch(
                f"Invalid cell size {self.cell_width}x{self.cell_height}"
            )
        self.version = version or DmiVersion()
        "The format version"
        self.text_chunks: dict[str, str] = dict(text_chunks or {})
        "Text chunks other than the metadata, passed through on save"
        self.extra: list[tuple[str, str]] = list(extra or [])
        "Unknown header entries, passed through on save"
        self._states: list[IconState] = []
        for state in states or []:
            self.add_state(state)

    def __repr__(self) -> str:
        return (
            f"DmiDocument(cell={self.cell_width}x{self.cell_height}, "
            f"states={len(self._states)})"
        )

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[IconState]:
        return iter(self._states)

    def __getitem__(self, index: int) -> IconState:
        return self._states[index]

    @property
    def states(self) -> tuple[IconState, ...]:
        """The states in order. Use the mutators to change the order."""
        return tuple(self._states)

    @property
    def cell_size(self) -> tuple[int, int]:
        """The image size ``(width, height)``."""
        return self.cell_width, self.cell_height

    # --- Queries ---

    def find_state(self, name: str) -> list[IconState]:
        """
        Returns every state with the given name, in document order.

        :param name: The state name
        :return: The matching states, empty if there are none
        """
        return [state for state in self._states if state.name == name]

    def state_names(self) -> list[str]:
        """Returns the names of all states in document order."""
        return [state.name for state in self._states]

    def duplicate_names(self) -> dict[str, int]:
        """Returns every name used by more than one state with its count."""
        counts = Counter(self.state_names())
        return {name: count for name, count in counts.items() if count > 1}

    def index_of(self, state: IconState) -> int:
        """Returns the position of a state owned by this document."""
        for index, candidate in enumerate(self._states):
            if candidate is state:
                return index
        raise ValueError(f"State {state.name!r} does not belong to this document")

    # --- Mutation ---

    def add_state(self, state: IconState, index: int | None = None) -> IconState:
        """
        Adds a state.

        :param state: The state, its images must match the cell size
        :param index: Insert position, appended if ``None``
        :return: The added state
        :raises GeometryMismatch: If the images do not match the cell size
        :raises ValueError: If the state already belongs to this document
        """
        if any(candidate is state for candidate in self._states):
            raise ValueError(f"State {state.name!r} is already part of this document")
        position = len(self._states) if index is None else index
        state.validate(self.cell_width, self.cell_height, state_index=position)
        self._states.insert(position, state)
        return state

    def remove_state(self, state: IconState | int) -> IconState:
        """
        Removes a state.

        :param state: The state object or its index
        :return: The removed state
        """
        index = state if isinstance(state, int) else self.index_of(state)
        return self._states.pop(index)

    def reorder_states(self, order: Sequence[int]) -> None:
        """
        Reorders the states.

        :param order: Permutation of the current indices; the state at
            ``order[i]`` moves to position ``i``
        :raises ValueError: If ``order`` is no permutation
        """
        if sorted(order) != list(range(len(self._states))):
            raise ValueError(
                f"Order {list(order)} is no permutation of {len(self._states)} states"
            )
        self._states = [self._states[index] for index in order]

    def move_state(self, old_index: int, new_index: int) -> None:
        """Moves the state at ``old_index`` to ``new_index``."""
        state = self._states.pop(old_index)
        self._states.insert(new_index, state)

    def copy(self) -> DmiDocument:
        """Returns a deep copy sharing no frame data with this document."""
        return DmiDocument(
            self.cell_width,
            self.cell_height,
            states=[state.copy() for state in self._states],
            version=self.version,
            text_chunks=self.text_chunks,
            extra=copy.deepcopy(self.extra),
        )

    # --- Conversion ---

    def to_metadata(self) -> DmiMetadata:
        """Builds the grammar-level description of the document."""
        return DmiMetadata(
            version=self.version,
            cell_width=self.cell_width,
            cell_height=self.cell_height,
            states=[state.to_metadata() for state in self._states],
            extra=list(self.extra),
        )

    def validate(self) -> None:
        """
        Re-checks the invariants of all states.

        :raises GeometryMismatch: If a state was corrupted by direct
            manipulation of its frames
        """
        for index, state in enumerate(self._states):
            try:
                state.validate(self.cell_width, self.cell_height, state_index=index)
            except MalformedMetadata as exc:
                raise GeometryMismatch(
                    f"Invariant violated: {exc.message}", **exc.context()
                ) from exc

    def pack(self) -> tuple[np.ndarray, GridLayout]:
        """
        Packs all images into a new sheet.

        :return: The RGBA sheet and its layout
        :raises GeometryMismatch: If an invariant was violated
        """
        self.validate()
        layout = plan_layout(
            self.cell_width,
            self.cell_height,
            [(state.dirs, state.frame_count) for state in self._states],
        )
        images = [frame.image for state in self._states for frame in state.flat_frames()]
        return pack_frames(images, layout), layout

    # --- File I/O ---

    @classmethod
    def load(cls, source: DmiSourceTypes, keyword: str | None = None, **params) -> DmiDocument:
        """
        Loads a DMI file.

        :param source: The file content, a file name or a binary file object
        :param keyword: Text chunk holding the metadata, see
            :class:`~dmistag.config.Settings`
        :param params: Overrides passed to :class:`~dmistag.parser.MetadataParser`
        :return: The document
        :raises ~dmistag.errors.DmiError: If the file is damaged or inconsistent
        """
        keyword = keyword or settings.METADATA_KEYWORD
        raster = decode_raster(_read_source(source))
        text_chunks = dict(raster.text_chunks)
        metadata = parse_metadata(_extract_metadata_text(text_chunks, keyword), **params)
        del text_chunks[keyword]
        layout = resolve_grid(
            raster.width,
            raster.height,
            metadata.cell_width,
            metadata.cell_height,
            metadata.shapes(),
        )
        images = slice_frames(raster.pixels, layout)
        states = []
        offset = 0
        for index, state_metadata in enumerate(metadata.states):
            count = state_metadata.image_count
            states.append(
                IconState.from_metadata(
                    state_metadata, images[offset:offset + count], state_index=index
                )
            )
            offset += count
        logger.debug(
            f"Loaded DMI with {len(states)} states from a {raster.width}x{raster.height} "
            f"sheet ({layout.columns} columns)"
        )
        return cls(
            metadata.cell_width,
            metadata.cell_height,
            states=states,
            version=metadata.version,
            text_chunks=text_chunks,
            extra=metadata.extra,
        )

    def save(
        self,
        target: str | Path | BinaryIO | None = None,
        keyword: str | None = None,
        compress_level: int | None = None,
    ) -> bytes:
        """
        Encodes the document as DMI file.

        :param target: Optional file name or binary file object to write to
        :param keyword: Text chunk receiving the metadata
        :param compress_level: zlib level 0-9
        :return: The file content
        :raises GeometryMismatch: If an invariant was violated by direct
            manipulation of frame data
        """
        keyword = keyword or settings.METADATA_KEYWORD
        pixels, layout = self.pack()
        text = serialize_metadata(self.to_metadata())
        text_chunks = {keyword: text}
        text_chunks.update(
            (key, value) for key, value in self.text_chunks.items() if key != keyword
        )
        data = encode_raster(
            RasterData(pixels, text_chunks),
            compress_level=compress_level,
            compressed_keys={keyword},
        )
        logger.debug(
            f"Saved DMI with {len(self._states)} states as {layout.width}x{layout.height} "
            f"sheet ({len(data)} bytes)"
        )
        if isinstance(target, (str, Path)):
            with open(target, "wb") as f:
                f.write(data)
        elif target is not None:
            target.write(data)
        return data


def load(source: DmiSourceTypes, **params) -> DmiDocument:
    """Shortcut for :meth:`DmiDocument.load`."""
    return DmiDocument.load(source, **params)


def save(document: DmiDocument, target: str | Path | BinaryIO | None = None, **params) -> bytes:
    """Shortcut for :meth:`DmiDocument.save`."""
    return document.save(target, **params)


__all__ = ["DmiDocument", "DmiSourceTypes", "read_metadata", "load", "save"]
