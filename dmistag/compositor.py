# DmiStag - Compositor
"""
Slicing a sprite sheet into cell images and packing cell images into a sheet.

Pixel buffers are numpy arrays of shape ``(height, width, 4)`` and dtype
``uint8`` holding RGBA data.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .errors import GeometryMismatch
from .geometry import GridLayout

RGBA_CHANNELS = 4


def check_rgba(pixels: np.ndarray, width: int | None = None, height: int | None = None,
               **context) -> None:
    """
    Verifies that a buffer is an RGBA ``uint8`` image of the expected size.

    :param pixels: The buffer
    :param width: Required width, if any
    :param height: Required height, if any
    :param context: Error context passed to :class:`GeometryMismatch`
    :raises GeometryMismatch: If the buffer does not match
    """
    if not isinstance(pixels, np.ndarray) or pixels.dtype != np.uint8:
        raise GeometryMismatch("Pixel data must be a numpy uint8 array", **context)
    if pixels.ndim != 3 or pixels.shape[2] != RGBA_CHANNELS:
        raise GeometryMismatch(
            f"Pixel data must have the shape (height, width, 4), got {pixels.shape}",
            **context,
        )
    if (width is not None and pixels.shape[1] != width) or (
        height is not None and pixels.shape[0] != height
    ):
        raise GeometryMismatch(
            f"Image is {pixels.shape[1]}x{pixels.shape[0]}, expected {width}x{height}",
            **context,
        )


def slice_frames(pixels: np.ndarray, layout: GridLayout) -> list[np.ndarray]:
    """
    Extracts the image of every cell referenced by the layout.

    The source buffer is not modified; every returned image is an
    independent copy.

    :param pixels: The full sheet
    :param layout: The resolved layout
    :return: One image per cell reference, in cell order
    """
    check_rgba(pixels)
    sheet_height, sheet_width = pixels.shape[:2]
    if layout.width > sheet_width or layout.height > sheet_height:
        raise GeometryMismatch(
            f"Layout of {layout.width}x{layout.height} exceeds the "
            f"{sheet_width}x{sheet_height} sheet"
        )
    images = []
    for ref in layout.cells:
        x, y = layout.origin(ref.cell)
        images.append(pixels[y:y + layout.cell_height, x:x + layout.cell_width].copy())
    return images


def pack_frames(images: Sequence[np.ndarray], layout: GridLayout) -> np.ndarray:
    """
    Copies images into a new transparent sheet.

    :param images: One image per cell reference, in cell order
    :param layout: The layout to pack into
    :return: The sheet of ``layout.width`` x ``layout.height`` pixels
    :raises GeometryMismatch: If the image count or an image size does not
        match the layout
    """
    if len(images) != len(layout.cells):
        raise GeometryMismatch(
            f"Layout holds {len(layout.cells)} images but {len(images)} were given"
        )
    sheet = np.zeros((layout.height, layout.width, RGBA_CHANNELS), dtype=np.uint8)
    for ref, image in zip(layout.cells, images):
        check_rgba(
            image,
            layout.cell_width,
            layout.cell_height,
            state_index=ref.state_index,
            direction=ref.direction,
            frame=ref.frame,
        )
        x, y = layout.origin(ref.cell)
        sheet[y:y + layout.cell_height, x:x + layout.cell_width] = image
    return sheet


__all__ = ["RGBA_CHANNELS", "check_rgba", "slice_frames", "pack_frames"]
