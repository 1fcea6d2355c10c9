# DmiStag - Grid geometry
"""
Grid geometry of a DMI sprite sheet.

A sheet is a row-major grid of equally sized cells. The images of all states
are stored one after another in the order produced by
:func:`flatten_order`; the loading and the saving side both use this one
function so slicing and packing stay inverse to each other.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterator, Sequence

from .errors import GeometryMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellRef:
    """Location of one image of a state within the grid."""

    state_index: int
    direction: int
    frame: int
    cell: int
    "Sequential row-major cell index"


def iter_state_cells(dirs: int, frames: int) -> Iterator[tuple[int, int]]:
    """
    Yields ``(direction, frame)`` of a state's images in storage order.

    All directions of the first frame come first, then all directions of
    the second frame and so on. This frame-major order is the one found in
    files written by the engine's own editor; it is not the intuitive
    direction-major order (all frames of one direction, then the next
    direction), which would scramble the images of animated directional
    states.

    :param dirs: The state's direction count
    :param frames: The state's frame count
    """
    for frame in range(frames):
        for direction in range(dirs):
            yield direction, frame


def flatten_order(shapes: Sequence[tuple[int, int]]) -> list[CellRef]:
    """
    Assigns every image of every state its sequential cell index.

    :param shapes: ``(dirs, frames)`` of every state in declaration order
    :return: One reference per image, ordered by cell index
    """
    cells = []
    for state_index, (dirs, frames) in enumerate(shapes):
        for direction, frame in iter_state_cells(dirs, frames):
            cells.append(CellRef(state_index, direction, frame, len(cells)))
    return cells


@dataclass(frozen=True)
class GridLayout:
    """Transient mapping of the flattened images onto grid cells.

    :ivar columns: Cells per row
    :ivar rows: Number of rows
    :ivar cell_width: Width of a cell in pixels
    :ivar cell_height: Height of a cell in pixels
    :ivar cells: One reference per image, ordered by cell index
    """

    columns: int
    rows: int
    cell_width: int
    cell_height: int
    cells: tuple[CellRef, ...]

    @property
    def width(self) -> int:
        """Width of the sheet in pixels."""
        return self.columns * self.cell_width

    @property
    def height(self) -> int:
        """Height of the sheet in pixels."""
        return self.rows * self.cell_height

    @property
    def capacity(self) -> int:
        """Number of cells in the grid."""
        return self.columns * self.rows

    @property
    def unused_cells(self) -> int:
        """Trailing cells not holding any image."""
        return self.capacity - len(self.cells)

    def position(self, cell: int) -> tuple[int, int]:
        """Returns ``(column, row)`` of a cell index."""
        return cell % self.columns, cell // self.columns

    def origin(self, cell: int) -> tuple[int, int]:
        """Returns the top-left pixel ``(x, y)`` of a cell index."""
        column, row = self.position(cell)
        return column * self.cell_width, row * self.cell_height

    def cells_of_state(self, state_index: int) -> list[CellRef]:
        """Returns the cell references belonging to one state."""
        return [cell for cell in self.cells if cell.state_index == state_index]


def resolve_grid(
    image_width: int,
    image_height: int,
    cell_width: int,
    cell_height: int,
    shapes: Sequence[tuple[int, int]],
) -> GridLayout:
    """
    Computes the layout of an existing sheet.

    Trailing unused cells are accepted and ignored.

    :param image_width: Width of the sheet in pixels
    :param image_height: Height of the sheet in pixels
    :param cell_width: Declared cell width
    :param cell_height: Declared cell height
    :param shapes: ``(dirs, frames)`` of every state in declaration order
    :return: The layout
    :raises GeometryMismatch: If the sheet does not divide into whole cells
        or holds fewer cells than the states require
    """
    if cell_width <= 0 or cell_height <= 0:
        raise GeometryMismatch(f"Invalid cell size {cell_width}x{cell_height}")
    if image_width % cell_width != 0 or image_height % cell_height != 0:
        raise GeometryMismatch(
            f"Image size {image_width}x{image_height} is no multiple of the "
            f"cell size {cell_width}x{cell_height}"
        )
    columns = image_width // cell_width
    if columns == 0:
        raise GeometryMismatch(
            f"Image width {image_width} is smaller than the cell width {cell_width}"
        )
    cells = flatten_order(shapes)
    rows = math.ceil(len(cells) / columns)
    available_rows = image_height // cell_height
    if rows > available_rows:
        overflow = cells[columns * available_rows]
        raise GeometryMismatch(
            f"{len(cells)} images declared but the {image_width}x{image_height} sheet "
            f"only holds {columns * available_rows} cells",
            state_index=overflow.state_index,
            direction=overflow.direction,
            frame=overflow.frame,
        )
    unused = columns * available_rows - len(cells)
    if unused:
        logger.debug(f"Ignoring {unused} trailing unused cells")
    return GridLayout(columns, rows, cell_width, cell_height, tuple(cells))


def pack_dimensions(image_count: int) -> tuple[int, int]:
    """
    Chooses ``(columns, rows)`` for packing a number of images.

    The grid is as square as possible: ``columns`` is the ceiling of the
    square root and ``rows`` the fewest rows holding every image, which
    also keeps the number of wasted cells minimal for that width. An empty
    sheet still gets one cell.

    :param image_count: Number of images
    :return: The grid dimensions in cells
    """
    if image_count <= 0:
        return 1, 1
    columns = math.isqrt(image_count - 1) + 1
    rows = math.ceil(image_count / columns)
    return columns, rows


def plan_layout(
    cell_width: int, cell_height: int, shapes: Sequence[tuple[int, int]]
) -> GridLayout:
    """
    Computes the layout for packing states into a new sheet.

    :param cell_width: Cell width in pixels
    :param cell_height: Cell height in pixels
    :param shapes: ``(dirs, frames)`` of every state in the current order
    :return: The layout
    """
    cells = flatten_order(shapes)
    columns, rows = pack_dimensions(len(cells))
    return GridLayout(columns, rows, cell_width, cell_height, tuple(cells))


__all__ = [
    "CellRef",
    "GridLayout",
    "iter_state_cells",
    "flatten_order",
    "resolve_grid",
    "pack_dimensions",
    "plan_layout",
]
