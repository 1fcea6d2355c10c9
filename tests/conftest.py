"""
Pytest fixtures for DmiStag tests
"""

import io

import numpy as np
import PIL.Image
import PIL.PngImagePlugin
import pytest

from dmistag import DmiDocument, IconState, Frame

CELL = 32


def _solid(value: int, width: int = CELL, height: int = CELL) -> np.ndarray:
    """Creates an opaque image whose color encodes ``value``."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, 0] = value % 256
    pixels[:, :, 1] = (value * 7) % 256
    pixels[:, :, 2] = 200
    pixels[:, :, 3] = 255
    return pixels


@pytest.fixture
def solid():
    """
    Factory for opaque single-color RGBA images.

    :return: Callable ``solid(value, width=32, height=32)``
    """
    return _solid


@pytest.fixture
def make_png():
    """
    Factory building PNG data with arbitrary text chunks, bypassing the codec.

    :return: Callable ``make_png(pixels, text_chunks=None)``
    """

    def factory(pixels: np.ndarray, text_chunks: dict | None = None) -> bytes:
        info = PIL.PngImagePlugin.PngInfo()
        for key, value in (text_chunks or {}).items():
            info.add_text(key, value, zip=key == "Description")
        stream = io.BytesIO()
        PIL.Image.fromarray(pixels).save(stream, format="PNG", pnginfo=info)
        return stream.getvalue()

    return factory


@pytest.fixture
def make_dmi(make_png):
    """
    Factory building a DMI file from metadata text and a grid of solid cells.

    Cell ``i`` of the sheet is filled with ``solid(i)``.

    :return: Callable ``make_dmi(text, columns, rows, cell=32, chunks=None)``
    """

    def factory(text: str, columns: int, rows: int, cell: int = CELL,
                chunks: dict | None = None) -> bytes:
        sheet = np.zeros((rows * cell, columns * cell, 4), dtype=np.uint8)
        for index in range(columns * rows):
            x, y = (index % columns) * cell, (index // columns) * cell
            sheet[y:y + cell, x:x + cell] = _solid(index, cell, cell)
        text_chunks = {"Description": text}
        text_chunks.update(chunks or {})
        return make_png(sheet, text_chunks)

    return factory


@pytest.fixture
def minimal_document() -> DmiDocument:
    """
    Two states on a 32x32 grid: ``A`` with one direction and two frames
    (images 0 and 1), ``B`` with four directions and one frame (images 10-13).
    """
    state_a = IconState("A", [[Frame(_solid(0)), Frame(_solid(1))]])
    state_b = IconState("B", [[Frame(_solid(10 + direction))] for direction in range(4)])
    return DmiDocument(CELL, CELL, states=[state_a, state_b])


@pytest.fixture
def minimal_metadata_text() -> str:
    """Metadata text matching :func:`minimal_document`."""
    return (
        "# BEGIN DMI\n"
        "version = 4.0\n"
        "\twidth = 32\n"
        "\theight = 32\n"
        "state = \"A\"\n"
        "\tdirs = 1\n"
        "\tframes = 2\n"
        "\tdelay = 1,1\n"
        "state = \"B\"\n"
        "\tdirs = 4\n"
        "\tframes = 1\n"
        "\tdelay = 1\n"
        "# END DMI\n"
    )
