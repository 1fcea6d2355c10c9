# DmiStag - Metadata serializer
"""
Renders a :class:`DmiMetadata` back into the textual DMI grammar.

``dirs``, ``frames`` and ``delay`` are always written. Optional keys are
omitted while they hold their default value, matching the output of the
engine's own editor.
"""

from __future__ import annotations

from .grammar import BEGIN_MARKER, END_MARKER, INDENT, KEY_SEPARATOR, quote
from .metadata import DmiMetadata, StateMetadata


def format_number(value: float) -> str:
    """
    Formats a delay in its shortest form: ``1``, ``0.5``, ``1.25``.

    :param value: The number
    :return: The text
    """
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _entry(key: str, value: object, indented: bool = True) -> str:
    return f"{INDENT if indented else ''}{key}{KEY_SEPARATOR}{value}"


def serialize_state(state: StateMetadata, state_index: int | None = None) -> list[str]:
    """
    Renders the lines of one state block.

    :param state: The state
    :param state_index: Position of the state, used as error context
    :return: The lines without line breaks
    """
    state.validate(state_index=state_index)
    lines = [
        _entry("state", quote(state.name), indented=False),
        _entry("dirs", state.dirs),
        _entry("frames", state.frames),
        _entry("delay", ",".join(format_number(value) for value in state.delays)),
    ]
    if state.loop:
        lines.append(_entry("loop", state.loop))
    if state.rewind:
        lines.append(_entry("rewind", 1))
    if state.movement:
        lines.append(_entry("movement", 1))
    for hotspot in state.hotspots:
        lines.append(_entry("hotspot", f"{hotspot.x},{hotspot.y},{hotspot.index}"))
    for key, value in state.extra:
        lines.append(_entry(key, value))
    return lines


def serialize_metadata(metadata: DmiMetadata) -> str:
    """
    Renders a complete metadata block, terminated by a line break.

    :param metadata: The structured description
    :return: The metadata text
    :raises MalformedMetadata: If a state violates its invariants
    """
    lines = [
        BEGIN_MARKER,
        _entry("version", metadata.version, indented=False),
        _entry("width", metadata.cell_width),
        _entry("height", metadata.cell_height),
    ]
    for key, value in metadata.extra:
        lines.append(_entry(key, value))
    for index, state in enumerate(metadata.states):
        lines.extend(serialize_state(state, state_index=index))
    lines.append(END_MARKER)
    return "\n".join(lines) + "\n"


__all__ = ["format_number", "serialize_state", "serialize_metadata"]
