"""
DmiStag - A codec for DMI icon files: PNG sprite sheets with an embedded
metadata block describing named, animated, directional icon states
"""

from .config import Settings, settings
from .errors import (
    DmiError,
    MalformedMetadata,
    UnsupportedVersion,
    UnexpectedEndOfInput,
    GeometryMismatch,
    RasterDecodeError,
    RasterEncodeError,
)
from .dirs import Dirs, DIR_ORDERING, VALID_DIR_COUNTS
from .metadata import DmiVersion, Hotspot, StateMetadata, DmiMetadata
from .parser import MetadataParser, parse_metadata
from .serializer import serialize_metadata
from .geometry import CellRef, GridLayout, flatten_order, resolve_grid, plan_layout
from .compositor import slice_frames, pack_frames
from .raster import RasterData, decode_raster, encode_raster
from .icon_state import Frame, IconState
from .document import DmiDocument, DmiSourceTypes, read_metadata, load, save

__all__ = [
    # Configuration
    "Settings",
    "settings",
    # Errors
    "DmiError",
    "MalformedMetadata",
    "UnsupportedVersion",
    "UnexpectedEndOfInput",
    "GeometryMismatch",
    "RasterDecodeError",
    "RasterEncodeError",
    # Directions
    "Dirs",
    "DIR_ORDERING",
    "VALID_DIR_COUNTS",
    # Metadata grammar
    "DmiVersion",
    "Hotspot",
    "StateMetadata",
    "DmiMetadata",
    "MetadataParser",
    "parse_metadata",
    "serialize_metadata",
    # Geometry and pixels
    "CellRef",
    "GridLayout",
    "flatten_order",
    "resolve_grid",
    "plan_layout",
    "slice_frames",
    "pack_frames",
    "RasterData",
    "decode_raster",
    "encode_raster",
    # Document
    "Frame",
    "IconState",
    "DmiDocument",
    "DmiSourceTypes",
    "read_metadata",
    "load",
    "save",
]

__version__ = "0.1.0"
