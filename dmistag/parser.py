# DmiStag - Metadata parser
"""
Parses the textual metadata block of a DMI file into a :class:`DmiMetadata`.

The parser is a line-oriented state machine over the tokens produced by
:func:`dmistag.grammar.tokenize`::

    BEGIN -> VERSION -> HEADER -> OUTSIDE_STATE <-> INSIDE_STATE -> DONE

Unknown keys are retained verbatim instead of being rejected.
"""

from __future__ import annotations

import logging
import math
from enum import Enum, auto
from typing import Iterable

from .config import settings
from .dirs import VALID_DIR_COUNTS
from .errors import MalformedMetadata, UnexpectedEndOfInput, UnsupportedVersion
from .grammar import Token, TokenKind, tokenize, unquote
from .metadata import DmiMetadata, DmiVersion, Hotspot, StateMetadata

logger = logging.getLogger(__name__)

_SINGLE_KEYS = {"dirs", "frames", "delay", "loop", "rewind", "movement"}


class ParserState(Enum):
    """Position of the parser within the metadata block."""
    BEGIN = auto()
    VERSION = auto()
    HEADER = auto()
    OUTSIDE_STATE = auto()
    INSIDE_STATE = auto()
    DONE = auto()


def _parse_int(token: Token, minimum: int | None = None) -> int:
    value = token.plain_value()
    try:
        number = int(value)
    except ValueError:
        raise MalformedMetadata(
            f"Expected an integer for {token.key!r}, got {value!r}", line=token.line
        ) from None
    if minimum is not None and number < minimum:
        raise MalformedMetadata(
            f"{token.key!r} must be at least {minimum}, got {number}", line=token.line
        )
    return number


def _parse_number_list(token: Token, convert: type) -> list:
    value = token.plain_value()
    # a trailing comma is tolerated
    items = value[:-1].split(",") if value.endswith(",") else value.split(",")
    try:
        return [convert(item) for item in items]
    except ValueError:
        raise MalformedMetadata(
            f"Invalid number list {value!r} for {token.key!r}", line=token.line
        ) from None


class MetadataParser:
    """
    Single-use parser for one metadata block.

    :param default_cell_width: Cell width if the header omits ``width``
    :param default_cell_height: Cell height if the header omits ``height``
    :param supported_versions: Versions accepted in the ``version`` line
    """

    def __init__(
        self,
        default_cell_width: int | None = None,
        default_cell_height: int | None = None,
        supported_versions: Iterable[str] | None = None,
    ):
        self.state = ParserState.BEGIN
        self.result = DmiMetadata(
            cell_width=default_cell_width or settings.DEFAULT_CELL_WIDTH,
            cell_height=default_cell_height or settings.DEFAULT_CELL_HEIGHT,
        )
        versions = (
            supported_versions
            if supported_versions is not None
            else settings.SUPPORTED_VERSIONS
        )
        self.supported_versions = {DmiVersion.parse(version) for version in versions}
        self._current: StateMetadata | None = None
        self._seen_keys: set[str] = set()
        self._header_keys: set[str] = set()

    def parse(self, text: str) -> DmiMetadata:
        """
        Parses the metadata text.

        :param text: The metadata block
        :return: The structured description
        :raises MalformedMetadata: On a grammar violation
        :raises UnsupportedVersion: If the version is not supported
        :raises UnexpectedEndOfInput: If the block is truncated
        """
        if self.state != ParserState.BEGIN:
            raise RuntimeError("MetadataParser instances can only be used once")
        for token in tokenize(text):
            self._feed(token)
            if self.state == ParserState.DONE:
                break
        if self.state != ParserState.DONE:
            self._fail_truncated()
        logger.debug(
            f"Parsed DMI metadata v{self.result.version}: {len(self.result.states)} states, "
            f"cell {self.result.cell_width}x{self.result.cell_height}"
        )
        return self.result

    def _fail_truncated(self) -> None:
        if self.state == ParserState.BEGIN:
            raise MalformedMetadata("Metadata is empty or lacks the '# BEGIN DMI' header")
        if self.state == ParserState.VERSION:
            raise MalformedMetadata("Metadata ends before the version line")
        if self.state == ParserState.INSIDE_STATE:
            current = self._current
            raise UnexpectedEndOfInput(
                "Metadata ends inside a state block without '# END DMI'",
                state=current.name,
                state_index=len(self.result.states),
                line=current.line,
            )
        raise UnexpectedEndOfInput("Metadata ends without '# END DMI'")

    def _feed(self, token: Token) -> None:
        handler = {
            ParserState.BEGIN: self._on_begin,
            ParserState.VERSION: self._on_version,
            ParserState.HEADER: self._on_header,
            ParserState.OUTSIDE_STATE: self._on_outside_state,
            ParserState.INSIDE_STATE: self._on_inside_state,
        }[self.state]
        handler(token)

    def _on_begin(self, token: Token) -> None:
        if token.kind != TokenKind.BEGIN:
            raise MalformedMetadata("Missing '# BEGIN DMI' header", line=token.line)
        self.state = ParserState.VERSION

    def _on_version(self, token: Token) -> None:
        if token.kind != TokenKind.ENTRY or token.indented or token.key != "version":
            raise MalformedMetadata("Expected the 'version' line", line=token.line)
        try:
            version = DmiVersion.parse(token.plain_value())
        except MalformedMetadata as exc:
            raise MalformedMetadata(exc.message, line=token.line) from None
        if version not in self.supported_versions:
            raise UnsupportedVersion(
                f"Unsupported DMI version {version}", line=token.line
            )
        self.result.version = version
        self.state = ParserState.HEADER

    def _on_header(self, token: Token) -> None:
        if token.kind != TokenKind.ENTRY or not token.indented:
            self.state = ParserState.OUTSIDE_STATE
            self._on_outside_state(token)
            return
        if token.key in ("width", "height"):
            if token.key in self._header_keys:
                raise MalformedMetadata(f"Duplicate key {token.key!r}", line=token.line)
            self._header_keys.add(token.key)
            size = _parse_int(token, minimum=1)
            if token.key == "width":
                self.result.cell_width = size
            else:
                self.result.cell_height = size
        else:
            logger.debug(f"Keeping unknown header key {token.key!r} (line {token.line})")
            self.result.extra.append((token.key, token.value))

    def _on_outside_state(self, token: Token) -> None:
        if token.kind == TokenKind.END:
            self.state = ParserState.DONE
            return
        if token.kind == TokenKind.BEGIN:
            raise MalformedMetadata("Unexpected second '# BEGIN DMI'", line=token.line)
        if token.indented:
            raise MalformedMetadata(
                f"Entry {token.key!r} outside of a state block", line=token.line
            )
        if token.key != "state":
            raise MalformedMetadata(
                f"Expected a 'state' entry, got {token.key!r}", line=token.line
            )
        self._current = StateMetadata(
            name=unquote(token.value, token.line), dirs=0, frames=0, line=token.line
        )
        self._seen_keys = set()
        self.state = ParserState.INSIDE_STATE

    def _on_inside_state(self, token: Token) -> None:
        if token.kind != TokenKind.ENTRY or not token.indented:
            self._finish_state()
            self.state = ParserState.OUTSIDE_STATE
            self._on_outside_state(token)
            return
        current = self._current
        key = token.key
        if key in _SINGLE_KEYS:
            if key in self._seen_keys:
                raise MalformedMetadata(
                    f"Duplicate key {key!r}",
                    line=token.line,
                    state=current.name,
                    state_index=len(self.result.states),
                )
            self._seen_keys.add(key)
        try:
            self._apply_key(current, token)
        except MalformedMetadata as exc:
            if exc.state is None:
                exc.state = current.name
                exc.state_index = len(self.result.states)
            raise

    @staticmethod
    def _apply_key(current: StateMetadata, token: Token) -> None:
        key = token.key
        if key == "dirs":
            current.dirs = _parse_int(token)
            if current.dirs not in VALID_DIR_COUNTS:
                raise MalformedMetadata(
                    f"dirs must be one of {VALID_DIR_COUNTS}, got {current.dirs}",
                    line=token.line,
                )
        elif key == "frames":
            current.frames = _parse_int(token, minimum=1)
        elif key == "delay":
            delays = _parse_number_list(token, float)
            if any(not math.isfinite(value) or value < 0 for value in delays):
                raise MalformedMetadata(
                    f"Delays must be finite and not negative, got {token.value!r}",
                    line=token.line,
                )
            current.delay = delays
        elif key == "loop":
            current.loop = _parse_int(token, minimum=0)
        elif key == "rewind":
            current.rewind = _parse_int(token) != 0
        elif key == "movement":
            current.movement = _parse_int(token) != 0
        elif key == "hotspot":
            values = _parse_number_list(token, int)
            if len(values) != 3:
                raise MalformedMetadata(
                    f"Hotspot needs three values 'x,y,image', got {token.value!r}",
                    line=token.line,
                )
            current.hotspots.append(Hotspot(*values))
        else:
            logger.debug(
                f"Keeping unknown key {key!r} of state {current.name!r} (line {token.line})"
            )
            current.extra.append((key, token.value))

    def _finish_state(self) -> None:
        current = self._current
        index = len(self.result.states)
        missing = [key for key in ("dirs", "frames") if key not in self._seen_keys]
        if missing:
            raise MalformedMetadata(
                f"State lacks required keys: {', '.join(missing)}",
                line=current.line,
                state=current.name,
                state_index=index,
            )
        current.validate(state_index=index)
        self.result.states.append(current)
        self._current = None


def parse_metadata(text: str, **params) -> DmiMetadata:
    """
    Parses a DMI metadata block.

    :param text: The metadata text
    :param params: Overrides passed to :class:`MetadataParser`
    :return: The structured description
    """
    return MetadataParser(**params).parse(text)


__all__ = ["ParserState", "MetadataParser", "parse_metadata"]
