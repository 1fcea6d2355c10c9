"""
Tests for the metadata grammar: tokenizer, parser and serializer.
"""

import pytest

from dmistag import (
    DmiMetadata,
    DmiVersion,
    Hotspot,
    MalformedMetadata,
    StateMetadata,
    UnexpectedEndOfInput,
    UnsupportedVersion,
    parse_metadata,
    serialize_metadata,
)
from dmistag.grammar import TokenKind, check_name, quote, tokenize, unquote
from dmistag.parser import MetadataParser
from dmistag.serializer import format_number


def block(*lines: str) -> str:
    """Joins lines into a metadata block."""
    return "\n".join(lines) + "\n"


HEADER = ("# BEGIN DMI", "version = 4.0", "\twidth = 32", "\theight = 32")


class TestTokenizer:
    """Tests for splitting metadata into tokens."""

    def test_markers_and_entries(self):
        """Markers, plain and indented entries are recognized."""
        tokens = list(tokenize(block("# BEGIN DMI", "version = 4.0", "\twidth = 32", "# END DMI")))
        assert [token.kind for token in tokens] == [
            TokenKind.BEGIN, TokenKind.ENTRY, TokenKind.ENTRY, TokenKind.END,
        ]
        assert tokens[1].key == "version"
        assert tokens[1].indented is False
        assert tokens[2].key == "width"
        assert tokens[2].indented is True
        assert tokens[2].line == 3

    def test_blank_lines_skipped(self):
        """Blank lines produce no tokens but keep line numbering."""
        tokens = list(tokenize("# BEGIN DMI\n\n   \nversion = 4.0\n"))
        assert len(tokens) == 2
        assert tokens[1].line == 4

    def test_line_without_separator_rejected(self):
        """A line without ' = ' is malformed."""
        with pytest.raises(MalformedMetadata) as exc_info:
            list(tokenize("# BEGIN DMI\nversion=4.0\n"))
        assert exc_info.value.line == 2

    def test_crlf_line_endings(self):
        """Lines may end with CR LF."""
        tokens = list(tokenize("# BEGIN DMI\r\nversion = 4.0\r\n\twidth = 32\r\n"))
        assert [token.line for token in tokens] == [1, 2, 3]
        assert tokens[1].value == "4.0"
        assert tokens[2].value == "32"

    @pytest.mark.parametrize(
        "separator", ["\x0b", "\x0c", "\x1c", "\x1e", "\x85", "\u2028", "\u2029"]
    )
    def test_unicode_separators_stay_in_line(self, separator):
        """Only LF ends a line; other separators belong to the value."""
        tokens = list(tokenize(f'# BEGIN DMI\nstate = "a{separator}b"\n# END DMI\n'))
        assert len(tokens) == 3
        assert tokens[1].value == f'"a{separator}b"'
        assert tokens[2].line == 3


class TestQuoting:
    """Tests for state name quoting."""

    def test_quote_escapes(self):
        """Backslashes and quotes are escaped."""
        assert quote('say "hi" \\o/') == '"say \\"hi\\" \\\\o/"'

    def test_unquote_reverses_quote(self):
        """Unquoting restores the raw name."""
        for name in ["", "plain", 'with "quotes"', "back\\slash", "a = b", "tab\there"]:
            assert unquote(quote(name)) == name

    def test_unquote_requires_quotes(self):
        """Unquoted values are rejected."""
        with pytest.raises(MalformedMetadata):
            unquote("open")

    def test_unquote_rejects_inner_quote(self):
        """A closing quote must be the last character."""
        with pytest.raises(MalformedMetadata):
            unquote('"open"x"')

    def test_unquote_rejects_unterminated(self):
        """An unterminated value is rejected."""
        with pytest.raises(MalformedMetadata):
            unquote('"open\\"')

    @pytest.mark.parametrize("name", ["two\nlines", "carriage\rreturn"])
    def test_quote_rejects_line_break(self, name):
        """Names cannot contain line breaks."""
        with pytest.raises(MalformedMetadata) as exc_info:
            quote(name)
        assert exc_info.value.state == name

    def test_check_name(self):
        """Names are any strings without CR or LF."""
        assert check_name("a\x0cb") == "a\x0cb"
        with pytest.raises(MalformedMetadata):
            check_name(None)



class TestParser:
    """Tests for parsing metadata blocks."""

    def test_parse_minimal(self, minimal_metadata_text):
        """The two-state fixture parses into structured records."""
        metadata = parse_metadata(minimal_metadata_text)
        assert metadata.version == DmiVersion(4, 0)
        assert (metadata.cell_width, metadata.cell_height) == (32, 32)
        assert [state.name for state in metadata.states] == ["A", "B"]
        assert metadata.states[0].dirs == 1
        assert metadata.states[0].frames == 2
        assert metadata.states[0].delay == [1.0, 1.0]
        assert metadata.states[1].dirs == 4
        assert metadata.states[1].frames == 1
        assert metadata.image_count == 6

    def test_cell_size_defaults_to_32(self):
        """Width and height fall back to 32 when omitted."""
        metadata = parse_metadata(block("# BEGIN DMI", "version = 4.0", "# END DMI"))
        assert (metadata.cell_width, metadata.cell_height) == (32, 32)
        assert metadata.states == []

    def test_cell_size_declared(self):
        """Declared width and height are used."""
        metadata = parse_metadata(
            block("# BEGIN DMI", "version = 4.0", "\twidth = 16", "\theight = 24", "# END DMI")
        )
        assert (metadata.cell_width, metadata.cell_height) == (16, 24)

    def test_optional_keys(self):
        """Loop, rewind, movement and hotspots are parsed."""
        metadata = parse_metadata(block(
            *HEADER,
            'state = "walk"',
            "\tdirs = 4",
            "\tframes = 2",
            "\tdelay = 0.5,2",
            "\tloop = 3",
            "\trewind = 1",
            "\tmovement = 1",
            "\thotspot = 4,5,1",
            "\thotspot = 6,7,8",
            "# END DMI",
        ))
        state = metadata.states[0]
        assert state.delay == [0.5, 2.0]
        assert state.loop == 3
        assert state.rewind is True
        assert state.movement is True
        assert state.hotspots == [Hotspot(4, 5, 1), Hotspot(6, 7, 8)]

    def test_absent_optional_keys_are_none(self):
        """Absent keys stay distinguishable from explicit defaults."""
        metadata = parse_metadata(block(
            *HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 1",
            'state = "b"', "\tdirs = 1", "\tframes = 1", "\tloop = 0", "\trewind = 0",
            "# END DMI",
        ))
        first, second = metadata.states
        assert first.delay is None and first.loop is None and first.rewind is None
        assert first.delays == [1.0]
        assert second.loop == 0 and second.rewind is False
        assert first.loop_count == second.loop_count == 0

    def test_escaped_name(self):
        """Escaped quotes and backslashes in names are restored."""
        metadata = parse_metadata(block(
            *HEADER, 'state = "say \\"hi\\" \\\\o/"', "\tdirs = 1", "\tframes = 1", "# END DMI"
        ))
        assert metadata.states[0].name == 'say "hi" \\o/'

    def test_unknown_keys_retained(self):
        """Unknown keys are kept verbatim and in order."""
        metadata = parse_metadata(block(
            "# BEGIN DMI", "version = 4.0", "\twidth = 32", "\tcolor = #ff0000", "\theight = 32",
            'state = "a"', "\tdirs = 1", "\tfuture = x,y", "\tframes = 1", "\tanother = 2",
            "# END DMI",
        ))
        assert metadata.extra == [("color", "#ff0000")]
        assert metadata.states[0].extra == [("future", "x,y"), ("another", "2")]

    def test_duplicate_names_allowed(self):
        """Two states with the same name are both kept."""
        metadata = parse_metadata(block(
            *HEADER,
            'state = "open"', "\tdirs = 1", "\tframes = 1",
            'state = "open"', "\tdirs = 4", "\tframes = 1",
            "# END DMI",
        ))
        assert len(metadata.find("open")) == 2

    def test_trailing_comma_in_delay(self):
        """A trailing comma in the delay list is tolerated."""
        metadata = parse_metadata(block(
            *HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 2", "\tdelay = 1,2,", "# END DMI"
        ))
        assert metadata.states[0].delay == [1.0, 2.0]

    def test_blank_lines_and_trailer_text_ignored(self):
        """Blank lines and text after the end marker are ignored."""
        metadata = parse_metadata(
            "# BEGIN DMI\nversion = 4.0\n\n"
            'state = "a"\n\tdirs = 1\n\tframes = 1\n\n# END DMI\ngarbage\n'
        )
        assert len(metadata.states) == 1

    def test_parser_single_use(self, minimal_metadata_text):
        """A parser instance can only be used once."""
        parser = MetadataParser()
        parser.parse(minimal_metadata_text)
        with pytest.raises(RuntimeError):
            parser.parse(minimal_metadata_text)

    def test_supported_versions_override(self):
        """Accepted versions can be configured."""
        text = block("# BEGIN DMI", "version = 3.0", "# END DMI")
        metadata = parse_metadata(text, supported_versions=["3.0", "4.0"])
        assert metadata.version == DmiVersion(3, 0)


class TestParserErrors:
    """Tests for grammar violations."""

    def test_missing_header(self):
        """Text without the begin marker is malformed."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block("version = 4.0", "# END DMI"))

    def test_empty_text(self):
        """Empty text is malformed."""
        with pytest.raises(MalformedMetadata):
            parse_metadata("")

    def test_missing_version(self):
        """The version line must follow the begin marker."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block("# BEGIN DMI", "\twidth = 32", "# END DMI"))
        assert exc_info.value.line == 2

    def test_missing_version_at_end(self):
        """A block ending right after the begin marker is malformed."""
        with pytest.raises(MalformedMetadata):
            parse_metadata("# BEGIN DMI\n")

    def test_invalid_version_text(self):
        """A version which is no major.minor pair is malformed."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block("# BEGIN DMI", "version = four", "# END DMI"))
        assert not isinstance(exc_info.value, UnsupportedVersion)

    def test_unsupported_version(self):
        """Unknown versions fail closed."""
        with pytest.raises(UnsupportedVersion) as exc_info:
            parse_metadata(block("# BEGIN DMI", "version = 5.0", "# END DMI"))
        assert exc_info.value.line == 2

    def test_delay_count_mismatch(self):
        """A delay list must have one entry per frame."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block(
                *HEADER,
                'state = "ok"', "\tdirs = 1", "\tframes = 1",
                'state = "bad"', "\tdirs = 1", "\tframes = 3", "\tdelay = 1,1",
                "# END DMI",
            ))
        assert exc_info.value.state == "bad"
        assert exc_info.value.state_index == 1
        assert exc_info.value.line == 8

    def test_invalid_dirs(self):
        """Only 1, 4 and 8 directions are permitted."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block(*HEADER, 'state = "a"', "\tdirs = 3", "\tframes = 1", "# END DMI"))
        assert exc_info.value.state == "a"
        assert exc_info.value.line == 6

    def test_non_numeric_value(self):
        """Numeric keys must hold numbers."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block(*HEADER, 'state = "a"', "\tdirs = 1", "\tframes = two", "# END DMI"))
        assert exc_info.value.line == 7

    def test_non_numeric_delay(self):
        """Delays must be numbers."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(
                *HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 2", "\tdelay = 1,x", "# END DMI"
            ))

    def test_negative_delay(self):
        """Delays must not be negative."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(
                *HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 1", "\tdelay = -1", "# END DMI"
            ))

    def test_zero_frames(self):
        """A state needs at least one frame."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(*HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 0", "# END DMI"))

    def test_missing_required_keys(self):
        """dirs and frames are required."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block(*HEADER, 'state = "a"', "\tdirs = 1", 'state = "b"',
                                 "\tdirs = 1", "\tframes = 1", "# END DMI"))
        assert "frames" in str(exc_info.value)
        assert exc_info.value.state == "a"

    def test_duplicate_key(self):
        """Single-valued keys may not repeat."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(
                *HEADER, 'state = "a"', "\tdirs = 1", "\tdirs = 4", "\tframes = 1", "# END DMI"
            ))

    def test_hotspot_out_of_range(self):
        """Hotspots must refer to an existing image."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(
                *HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 1",
                "\thotspot = 1,1,2", "# END DMI",
            ))

    def test_hotspot_needs_three_values(self):
        """Hotspots consist of x, y and an image number."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(
                *HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 1", "\thotspot = 1,1", "# END DMI"
            ))

    def test_unquoted_name(self):
        """State names must be quoted."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(*HEADER, "state = a", "\tdirs = 1", "\tframes = 1", "# END DMI"))

    def test_unexpected_top_level_key(self):
        """Only state entries may appear unindented after the header."""
        with pytest.raises(MalformedMetadata):
            parse_metadata(block(*HEADER, "frames = 1", "# END DMI"))

    def test_truncated_state_block(self):
        """A state block cut off before the end marker is reported as truncated."""
        with pytest.raises(UnexpectedEndOfInput) as exc_info:
            parse_metadata(block(*HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 1",
                                 'state = "cut"', "\tdirs = 1"))
        assert exc_info.value.state == "cut"
        assert exc_info.value.state_index == 1

    def test_missing_end_marker(self):
        """A header without states and end marker is truncated."""
        with pytest.raises(UnexpectedEndOfInput):
            parse_metadata(block(*HEADER))

    def test_error_message_contains_context(self):
        """The string form of an error lists its context."""
        with pytest.raises(MalformedMetadata) as exc_info:
            parse_metadata(block(*HEADER, 'state = "a"', "\tdirs = 2", "\tframes = 1", "# END DMI"))
        message = str(exc_info.value)
        assert "line=6" in message
        assert "state='a'" in message


class TestSerializer:
    """Tests for rendering metadata as text."""

    def test_format_number(self):
        """Delays use their shortest form."""
        assert format_number(1.0) == "1"
        assert format_number(2) == "2"
        assert format_number(0.5) == "0.5"
        assert format_number(1.25) == "1.25"

    def test_serialize_exact_text(self, minimal_metadata_text):
        """The fixture metadata renders to the expected text."""
        metadata = DmiMetadata(states=[
            StateMetadata("A", dirs=1, frames=2, delay=[1, 1]),
            StateMetadata("B", dirs=4, frames=1),
        ])
        assert serialize_metadata(metadata) == minimal_metadata_text

    def test_defaults_are_omitted(self):
        """loop = 0, rewind and movement off are not written."""
        metadata = DmiMetadata(states=[
            StateMetadata("a", loop=0, rewind=False, movement=False),
        ])
        text = serialize_metadata(metadata)
        assert "loop" not in text
        assert "rewind" not in text
        assert "movement" not in text
        assert "\tdelay = 1\n" in text

    def test_optional_keys_written(self):
        """Non-default optional keys are written in canonical order."""
        metadata = DmiMetadata(states=[
            StateMetadata(
                'q"uote', dirs=1, frames=2, delay=[0.5, 3], loop=2, rewind=True,
                movement=True, hotspots=[Hotspot(1, 2, 2)], extra=[("future", "7")],
            ),
        ])
        text = serialize_metadata(metadata)
        assert text.endswith(
            'state = "q\\"uote"\n'
            "\tdirs = 1\n"
            "\tframes = 2\n"
            "\tdelay = 0.5,3\n"
            "\tloop = 2\n"
            "\trewind = 1\n"
            "\tmovement = 1\n"
            "\thotspot = 1,2,2\n"
            "\tfuture = 7\n"
            "# END DMI\n"
        )

    def test_invalid_state_rejected(self):
        """States violating their invariants are not serialized."""
        metadata = DmiMetadata(states=[StateMetadata("a", dirs=1, frames=2, delay=[1])])
        with pytest.raises(MalformedMetadata):
            serialize_metadata(metadata)


class TestGrammarRoundTrip:
    """Tests for parse(serialize(x)) == x."""

    def test_structured_round_trip(self):
        """A description without default ambiguity survives a round trip."""
        metadata = DmiMetadata(
            cell_width=16,
            cell_height=48,
            extra=[("color", "#ff0000")],
            states=[
                StateMetadata("idle", dirs=1, frames=1, delay=[1.0]),
                StateMetadata(
                    'tricky "name" \\ = here', dirs=8, frames=3, delay=[0.5, 1.0, 2.25],
                    loop=4, rewind=True, movement=True,
                    hotspots=[Hotspot(3, 4, 1), Hotspot(5, 6, 24)],
                    extra=[("future", "a,b")],
                ),
                StateMetadata("idle", dirs=4, frames=2, delay=[1.0, 1.0]),
            ],
        )
        assert parse_metadata(serialize_metadata(metadata)) == metadata

    @pytest.mark.parametrize("name", ["a\x0cb", "a\u2028b", "a\x85b", "a\x1eb", "end\x0b"])
    def test_names_with_unicode_separators(self, name):
        """Names containing non-LF line separators survive a round trip."""
        metadata = DmiMetadata(
            states=[StateMetadata(name, dirs=1, frames=1, delay=[1.0])],
            extra=[("note", f"x{name}y")],
        )
        assert parse_metadata(serialize_metadata(metadata)) == metadata

    def test_raw_text_not_byte_identical(self):

        """Explicit defaults are normalized away, so only the structure survives."""
        text = block(*HEADER, 'state = "a"', "\tdirs = 1", "\tframes = 1", "\tloop = 0", "# END DMI")
        parsed = parse_metadata(text)
        rendered = serialize_metadata(parsed)
        assert rendered != text
        reparsed = parse_metadata(rendered)
        assert reparsed.states[0].loop is None
        assert reparsed.states[0].loop_count == parsed.states[0].loop_count

    def test_serialize_is_stable(self, minimal_metadata_text):
        """Serializing parsed canonical text reproduces it exactly."""
        assert serialize_metadata(parse_metadata(minimal_metadata_text)) == minimal_metadata_text
