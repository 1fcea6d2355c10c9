# DmiStag - Directions
"""
Direction flags of the game engine and their on-disk ordering.
"""

from __future__ import annotations

from enum import IntFlag


class Dirs(IntFlag):
    """The engine's direction flags. Diagonals are unions of two cardinals."""

    NORTH = 1
    SOUTH = 2
    EAST = 4
    WEST = 8
    NORTHEAST = NORTH | EAST
    NORTHWEST = NORTH | WEST
    SOUTHEAST = SOUTH | EAST
    SOUTHWEST = SOUTH | WEST


DIR_ORDERING: tuple[Dirs, ...] = (
    Dirs.SOUTH,
    Dirs.NORTH,
    Dirs.EAST,
    Dirs.WEST,
    Dirs.SOUTHEAST,
    Dirs.SOUTHWEST,
    Dirs.NORTHEAST,
    Dirs.NORTHWEST,
)
"Order in which the directions of a state are stored in a DMI file"

VALID_DIR_COUNTS: tuple[int, ...] = (1, 4, 8)
"The permitted values of a state's ``dirs`` key"


def directions_for(dirs: int) -> tuple[Dirs, ...]:
    """
    Returns the directions stored by a state with ``dirs`` directions.

    :param dirs: The direction count, one of :data:`VALID_DIR_COUNTS`
    :return: The directions in on-disk order
    """
    if dirs not in VALID_DIR_COUNTS:
        raise ValueError(f"Invalid direction count {dirs}, expected one of {VALID_DIR_COUNTS}")
    return DIR_ORDERING[:dirs]


def dir_to_index(direction: Dirs | int, dirs: int) -> int:
    """
    Resolves a direction to its index within a state.

    :param direction: A :class:`Dirs` value or a plain direction index
    :param dirs: The state's direction count
    :return: The index into the state's direction sequences
    :raises ValueError: If the direction is not stored by such a state
    """
    if isinstance(direction, Dirs):
        available = directions_for(dirs)
        if direction not in available:
            raise ValueError(
                f"Direction {direction.name} is not available in a state with {dirs} dirs"
            )
        return available.index(direction)
    if not 0 <= direction < dirs:
        raise ValueError(f"Direction index {direction} out of range for {dirs} dirs")
    return int(direction)


__all__ = ["Dirs", "DIR_ORDERING", "VALID_DIR_COUNTS", "directions_for", "dir_to_index"]
