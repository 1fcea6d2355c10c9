# DmiStag - Raster adapter
"""
Thin adapter around Pillow's PNG codec.

Decodes a PNG container into an RGBA pixel buffer plus its text chunks and
encodes the inverse. Everything DMI specific lives elsewhere.
"""

from __future__ import annotations

import io
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field

import PIL.Image
import PIL.PngImagePlugin
import filetype
import numpy as np

from .config import settings
from .errors import RasterDecodeError, RasterEncodeError

logger = logging.getLogger(__name__)

PNG_MIME = "image/png"


@dataclass
class RasterData:
    """A decoded raster: RGBA pixels and the named text chunks.

    :ivar pixels: ``(height, width, 4)`` uint8 RGBA buffer
    :ivar text_chunks: Text chunk keyword -> text, in file order
    """

    pixels: np.ndarray
    text_chunks: dict[str, str] = field(default_factory=dict)

    @property
    def width(self) -> int:
        """Width in pixels."""
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        """Height in pixels."""
        return self.pixels.shape[0]


_limit_lock = threading.Lock()
_limit_users = 0
_pillow_limits: tuple[int, int] = (0, 0)


@contextmanager
def _text_chunk_limits():
    """
    Raises Pillow's process-wide text chunk caps to
    :attr:`Settings.MAX_TEXT_CHUNK <dmistag.config.Settings.MAX_TEXT_CHUNK>`
    while PNG data is decoded, restoring them once the last decoder is done.
    """
    global _limit_users, _pillow_limits
    with _limit_lock:
        if _limit_users == 0:
            _pillow_limits = (
                PIL.PngImagePlugin.MAX_TEXT_CHUNK,
                PIL.PngImagePlugin.MAX_TEXT_MEMORY,
            )
            PIL.PngImagePlugin.MAX_TEXT_CHUNK = settings.MAX_TEXT_CHUNK
            PIL.PngImagePlugin.MAX_TEXT_MEMORY = max(
                _pillow_limits[1], settings.MAX_TEXT_CHUNK
            )
        _limit_users += 1
    try:
        yield
    finally:
        with _limit_lock:
            _limit_users -= 1
            if _limit_users == 0:
                (
                    PIL.PngImagePlugin.MAX_TEXT_CHUNK,
                    PIL.PngImagePlugin.MAX_TEXT_MEMORY,
                ) = _pillow_limits


def _open_png(data: bytes) -> PIL.Image.Image:
    if filetype.guess_mime(data) != PNG_MIME:
        raise RasterDecodeError("Data is not a PNG image")
    try:
        return PIL.Image.open(io.BytesIO(data), formats=["PNG"])
    except (OSError, ValueError, SyntaxError) as exc:
        raise RasterDecodeError(f"Invalid or damaged PNG data: {exc}") from exc


def decode_raster(data: bytes) -> RasterData:
    """
    Decodes PNG data into RGBA pixels and text chunks.

    Palette, grayscale and RGB images are converted to RGBA.

    :param data: The PNG file's content
    :return: The decoded raster
    :raises RasterDecodeError: If the data is no decodable PNG
    """
    with _text_chunk_limits(), _open_png(data) as image:
        try:
            image.load()
            text_chunks = dict(image.text)
            if image.mode != "RGBA":
                logger.debug(f"Converting {image.mode} PNG to RGBA")
                converted = image.convert("RGBA")
            else:
                converted = image
            pixels = np.array(converted, dtype=np.uint8)
        except (OSError, ValueError, SyntaxError) as exc:
            raise RasterDecodeError(f"Invalid or damaged PNG data: {exc}") from exc
    return RasterData(pixels=pixels, text_chunks=text_chunks)


def read_raster_info(data: bytes) -> tuple[int, int, dict[str, str]]:
    """
    Reads the size and text chunks of a PNG without decoding its pixels.

    Text chunks stored behind the image data force a full load.

    :param data: The PNG file's content
    :return: Width, height and the text chunks
    :raises RasterDecodeError: If the data is no readable PNG
    """
    with _text_chunk_limits(), _open_png(data) as image:
        text_chunks = {
            key: value for key, value in image.info.items() if isinstance(value, str)
        }
        if settings.METADATA_KEYWORD not in text_chunks:
            try:
                text_chunks = dict(image.text)
            except (OSError, ValueError, SyntaxError) as exc:
                raise RasterDecodeError(f"Invalid or damaged PNG data: {exc}") from exc
        return image.width, image.height, text_chunks


def encode_raster(
    raster: RasterData,
    compress_level: int | None = None,
    compressed_keys: set[str] | None = None,
) -> bytes:
    """
    Encodes pixels and text chunks as PNG.

    Text chunks are written ahead of the image data. Keys listed in
    ``compressed_keys`` (by default the metadata keyword) are stored as
    compressed zTXt chunks, all other keys as plain tEXt chunks.

    :param raster: The raster to encode
    :param compress_level: zlib level 0-9, see :class:`~dmistag.config.Settings`
    :param compressed_keys: Keys to store compressed
    :return: The PNG file's content
    :raises RasterEncodeError: If Pillow fails to encode the data
    """
    if compress_level is None:
        compress_level = settings.PNG_COMPRESS_LEVEL
    if compressed_keys is None:
        compressed_keys = {settings.METADATA_KEYWORD}
    info = PIL.PngImagePlugin.PngInfo()
    output_stream = io.BytesIO()
    try:
        for key, value in raster.text_chunks.items():
            info.add_text(key, value, zip=key in compressed_keys)
        image = PIL.Image.fromarray(np.ascontiguousarray(raster.pixels, dtype=np.uint8))
        image.save(
            output_stream, format="PNG", pnginfo=info, compress_level=compress_level
        )
    except (OSError, ValueError, TypeError) as exc:
        raise RasterEncodeError(f"PNG encoding failed: {exc}") from exc
    return output_stream.getvalue()


__all__ = [
    "PNG_MIME",
    "RasterData",
    "decode_raster",
    "read_raster_info",
    "encode_raster",
]
