"""
Tests for the placeholder and dialogue translator.

Tests cover:
- {{char}}/{{user}} ⇄ {character}/{user} translation
- Round-trip stability for text without canonical tokens
- mes_example segmentation (line anchoring, <START>, residue)
- Archive speaker prefixes
- Rendering turns back into card and archive text
"""

import pytest
from ellipsis_interchange.services.interchange.macro_processor import (
    DialogueStyle,
    DialogueTurn,
    MacroProcessor,
    Speaker,
    extract_summary,
    parse_prefixed_message,
    render_dialogue,
    render_turn,
    segment_dialogue,
)


class TestMacroProcessor:
    """Test suite for MacroProcessor class."""

    def test_to_internal(self):
        """Card macros become canonical placeholders."""
        assert MacroProcessor.to_internal("{{char}} greets {{user}}") == "{character} greets {user}"

    def test_to_external(self):
        """Canonical placeholders become card macros."""
        assert MacroProcessor.to_external("{character} greets {user}") == "{{char}} greets {{user}}"

    def test_to_external_case_insensitive(self):
        """Hand-edited placeholders with odd casing still translate."""
        assert MacroProcessor.to_external("{Character} and {USER}") == "{{char}} and {{user}}"

    def test_to_external_keeps_card_macros(self):
        """Card macros that to_internal left alone are not wrapped again."""
        assert MacroProcessor.to_external("{{Char}} and {{USER}}") == "{{Char}} and {{USER}}"

    def test_to_external_beside_literal_braces(self):
        """A token next to a literal brace is still translated."""
        assert MacroProcessor.to_external("{character}}") == "{{char}}}"
        assert MacroProcessor.to_external("{{character}}") == "{{{char}}}"

    def test_multiple_occurrences(self):
        text = "{{char}} likes {{user}}. {{char}} is friendly to {{user}}."
        expected = "{character} likes {user}. {character} is friendly to {user}."
        assert MacroProcessor.to_internal(text) == expected

    def test_empty_and_none(self):
        assert MacroProcessor.to_internal(None) == ""
        assert MacroProcessor.to_internal("") == ""
        assert MacroProcessor.to_external(None) == ""

    @pytest.mark.parametrize("text", [
        "{{char}} and {{user}}",
        "{{Char}} keeps its casing",
        "{{CHAR}}: {{USER}}",
        "No placeholders here.",
        "{{char}}'s sword, {{user}}'s shield",
        "Braces { like } this",
        "Multi\nline {{user}}\n{{char}}",
        "{{char}}}",
        "{{{user}}",
        "{{{char}}}",
        "{{{user}}}",
        "{{{{user}}}}",
        "{{{USER}}}",
    ])
    def test_round_trip_stable(self, text):
        """to_external(to_internal(t)) == t when t has no canonical tokens."""
        assert MacroProcessor.to_external(MacroProcessor.to_internal(text)) == text


class TestSegmentDialogue:
    """Splitting mes_example blobs into turns."""

    def test_two_turns(self):
        """The canonical two-line example yields exactly two hidden turns."""
        turns = segment_dialogue("{{user}}:\nHi\n{{char}}:\nHello")
        assert turns == [
            DialogueTurn(content="Hi", speaker=Speaker.USER),
            DialogueTurn(content="Hello", speaker=Speaker.CHARACTER),
        ]

    def test_start_markers_dropped(self):
        blob = "<START>\n{{user}}: Hi\n{{char}}: Hello\n<START>\n{{user}}: Again"
        turns = segment_dialogue(blob)
        assert [t.content for t in turns] == ["Hi", "Hello", "Again"]
        assert [t.speaker for t in turns] == [Speaker.USER, Speaker.CHARACTER, Speaker.USER]

    def test_marker_must_start_a_line(self):
        """A marker in the middle of a line stays part of the content."""
        turns = segment_dialogue("{{user}}: I said {{char}}: hi")
        assert len(turns) == 1
        assert turns[0].content == "I said {character}: hi"

    def test_multiline_content(self):
        turns = segment_dialogue("{{char}}:\nFirst line.\nSecond line.\n{{user}}: ok")
        assert turns[0].content == "First line.\nSecond line."

    def test_content_placeholders_translated(self):
        turns = segment_dialogue("{{char}}: Welcome, {{user}}!")
        assert turns[0].content == "Welcome, {user}!"

    def test_marker_case_insensitive(self):
        turns = segment_dialogue("{{USER}}: hey\n{{Char}}: ho")
        assert [t.speaker for t in turns] == [Speaker.USER, Speaker.CHARACTER]

    def test_residue_discarded(self):
        """Text before the first marker is dropped, not an error."""
        turns = segment_dialogue("Some preamble\n{{char}}: Hey")
        assert turns == [DialogueTurn(content="Hey", speaker=Speaker.CHARACTER)]

    def test_no_markers(self):
        assert segment_dialogue("Just prose, no dialogue.") == []
        assert segment_dialogue("") == []
        assert segment_dialogue(None) == []

    def test_empty_segments_dropped(self):
        turns = segment_dialogue("{{user}}:\n{{char}}: Hello")
        assert turns == [DialogueTurn(content="Hello", speaker=Speaker.CHARACTER)]

    def test_archive_markers(self):
        turns = segment_dialogue("#{user}: Hi\n#{character}: Hello")
        assert [t.speaker for t in turns] == [Speaker.USER, Speaker.CHARACTER]


class TestPrefixedMessages:
    """Archive example messages with inline speaker prefixes."""

    def test_user_prefix(self):
        assert parse_prefixed_message("#{user}: Let me pass.") == DialogueTurn(
            content="Let me pass.", speaker=Speaker.USER
        )

    def test_character_prefix_with_newline(self):
        turn = parse_prefixed_message("#{character}:\nNever.")
        assert turn.speaker is Speaker.CHARACTER
        assert turn.content == "Never."

    def test_named_speaker(self):
        turn = parse_prefixed_message("Mara: Let him through.")
        assert turn.speaker is None
        assert turn.speaker_name == "Mara"
        assert turn.content == "Let him through."

    def test_unprefixed(self):
        turn = parse_prefixed_message("Plain reply.")
        assert turn.speaker is None
        assert turn.speaker_name is None
        assert turn.content == "Plain reply."


class TestRendering:
    """Folding turns back into external text."""

    def test_card_dialogue(self):
        turns = [
            DialogueTurn(content="Hi", speaker=Speaker.USER),
            DialogueTurn(content="Hello, {user}", speaker=Speaker.CHARACTER),
        ]
        assert render_dialogue(turns, DialogueStyle.CARD) == "{{user}}:\nHi\n{{char}}:\nHello, {{user}}"

    def test_archive_turn_keeps_placeholders(self):
        assert render_turn(Speaker.USER, "Hi {character}", DialogueStyle.ARCHIVE) == "#{user}:\nHi {character}"

    def test_unattributed_turn(self):
        assert render_turn(None, "Narration", DialogueStyle.CARD) == "Narration"

    def test_segment_render_round_trip(self):
        blob = "{{user}}:\nHi\n{{char}}:\nHello"
        assert render_dialogue(segment_dialogue(blob), DialogueStyle.CARD) == blob


class TestExtractSummary:
    """Short descriptions derived from personas."""

    def test_first_sentence(self):
        assert extract_summary("Mira is a witch. She lives alone.") == "Mira is a witch."

    def test_short_text_without_sentence_end(self):
        assert extract_summary("A quiet guard") == "A quiet guard"

    def test_long_text_truncated(self):
        summary = extract_summary("word " * 60)
        assert summary.endswith("...")
        assert len(summary) <= 150

    def test_empty(self):
        assert extract_summary("") == ""
