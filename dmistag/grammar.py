# DmiStag - Grammar primitives
"""
Line tokenizer and quoting rules shared by the metadata parser and serializer.

A metadata block is a sequence of lines. Apart from the begin / end markers
every line is an entry ``key = value``; entries indented by a tab belong to
the preceding unindented entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

from .errors import MalformedMetadata

BEGIN_MARKER = "# BEGIN DMI"
END_MARKER = "# END DMI"
KEY_SEPARATOR = " = "
INDENT = "\t"

_UNQUOTED_FORBIDDEN = set(' \t="\\')
LINE_BREAKS = "\n\r"
"Characters a state name may not contain"


class TokenKind(Enum):
    """Kinds of metadata lines."""
    BEGIN = auto()
    END = auto()
    ENTRY = auto()


@dataclass(frozen=True)
class Token:
    """One non-blank line of the metadata block."""
    kind: TokenKind
    line: int
    key: str = ""
    value: str = ""
    indented: bool = False

    def plain_value(self) -> str:
        """
        Returns the value of an entry which must not be quoted.

        :raises MalformedMetadata: If the value is empty or contains quotes,
            backslashes, whitespace or equals signs
        """
        if not self.value or any(char in _UNQUOTED_FORBIDDEN for char in self.value):
            raise MalformedMetadata(
                f"Invalid value {self.value!r} for key {self.key!r}", line=self.line
            )
        return self.value


def tokenize(text: str) -> Iterator[Token]:
    """
    Splits a metadata block into tokens. Blank lines are skipped.

    Lines end at ``\\n`` or ``\\r\\n`` only; other Unicode line separators
    are ordinary characters of a value.

    :param text: The metadata text
    :return: Iterator over the tokens in line order
    :raises MalformedMetadata: If a line is neither a marker nor an entry
    """
    for number, raw in enumerate(text.split("\n"), start=1):
        if raw.endswith("\r"):
            raw = raw[:-1]
        if not raw.strip():
            continue
        stripped = raw.strip()
        if stripped == BEGIN_MARKER:
            yield Token(TokenKind.BEGIN, number)
            continue
        if stripped == END_MARKER:
            yield Token(TokenKind.END, number)
            continue
        body = raw.lstrip(" \t")
        key, separator, value = body.partition(KEY_SEPARATOR)
        if not separator or not key:
            raise MalformedMetadata(
                f"Expected 'key = value', got {raw!r}", line=number
            )
        yield Token(
            TokenKind.ENTRY,
            number,
            key=key,
            value=value,
            indented=len(body) != len(raw),
        )


def check_name(name: str, **context) -> str:
    """
    Verifies that a state name can be written to a metadata block.

    :param name: The state name
    :param context: Error context passed to :class:`MalformedMetadata`
    :return: The name
    :raises MalformedMetadata: If the name is no string or contains a line break
    """
    if not isinstance(name, str):
        raise MalformedMetadata(f"State names must be strings, got {name!r}", **context)
    if any(char in LINE_BREAKS for char in name):
        context.setdefault("state", name)
        raise MalformedMetadata(f"Name {name!r} contains a line break", **context)
    return name


def quote(text: str) -> str:
    """
    Quotes a state name, escaping backslashes and double quotes.

    :param text: The raw name
    :return: The quoted name
    :raises MalformedMetadata: If the name contains a line break
    """
    check_name(text)
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def unquote(value: str, line: int | None = None) -> str:
    """
    Reverses :func:`quote`.

    The value must be wrapped in double quotes. Inside, a backslash takes
    the following character literally.

    :param value: The quoted text
    :param line: Line number used as error context
    :return: The raw text
    :raises MalformedMetadata: If the quoting is invalid
    """
    if len(value) < 2 or value[0] != '"':
        raise MalformedMetadata(f"Expected a quoted value, got {value!r}", line=line)
    result = []
    escaped = False
    body = value[1:]
    for position, char in enumerate(body):
        if escaped:
            result.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            if position != len(body) - 1:
                raise MalformedMetadata(
                    f"Closing quote before the end of the value {value!r}", line=line
                )
            return "".join(result)
        else:
            result.append(char)
    raise MalformedMetadata(f"Unterminated quoted value {value!r}", line=line)


__all__ = [
    "BEGIN_MARKER",
    "END_MARKER",
    "KEY_SEPARATOR",
    "INDENT",
    "LINE_BREAKS",
    "TokenKind",
    "Token",
    "tokenize",
    "check_name",
    "quote",
    "unquote",
]
