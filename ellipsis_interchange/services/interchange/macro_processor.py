"""
Placeholder and dialogue translation shared by every format adapter.

Canonical stories write placeholders as {character} and {user}. Character
cards use {{char}} / {{user}}, and fold example dialogue into one text blob
with "{{user}}:" / "{{char}}:" line prefixes. Archives keep the canonical
placeholders but prefix each example message with "#{user}:" or
"#{character}:".
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class Speaker(str, Enum):
    """Who a placeholder-prefixed dialogue line belongs to."""
    USER = "user"
    CHARACTER = "character"


class DialogueStyle(Enum):
    """Prefix convention of an external format."""
    CARD = "card"
    ARCHIVE = "archive"


_PREFIX_SPEAKERS = {
    "{{user}}": Speaker.USER,
    "{{char}}": Speaker.CHARACTER,
    "#{user}": Speaker.USER,
    "#{character}": Speaker.CHARACTER,
}

_STYLE_PREFIXES = {
    DialogueStyle.CARD: {Speaker.USER: "{{user}}:", Speaker.CHARACTER: "{{char}}:"},
    DialogueStyle.ARCHIVE: {Speaker.USER: "#{user}:", Speaker.CHARACTER: "#{character}:"},
}

_MARKER = r"(?:\{\{user\}\}|\{\{char\}\}|#\{user\}|#\{character\})"

# Line-anchored: a marker only opens a segment at the start of a line
DIALOGUE_SEGMENT_PATTERN = re.compile(
    rf"^({_MARKER}):(.*?)(?=^{_MARKER}:|\Z)",
    re.MULTILINE | re.DOTALL | re.IGNORECASE,
)
_LEADING_MARKER_PATTERN = re.compile(rf"^\s*({_MARKER}):", re.IGNORECASE)
_NAMED_SPEAKER_PATTERN = re.compile(r"^(.+?):")
_START_MARKER_PATTERN = re.compile(r"<START>", re.IGNORECASE)

_CARD_CHAR = re.compile(r"\{\{char\}\}")
_CARD_USER = re.compile(r"\{\{user\}\}")
# Card macros are consumed whole so only bare canonical tokens are rewritten
_OUTWARD_PATTERN = re.compile(r"\{\{(?:char|user)\}\}|\{(character|user)\}", re.IGNORECASE)
_EXTERNAL_MACROS = {"character": "{{char}}", "user": "{{user}}"}


def _external_macro(match: re.Match) -> str:
    token = match.group(1)
    if token is not None:
        return _EXTERNAL_MACROS[token.lower()]
    # a lowercase {{user}} here is a {user} token that sat inside literal braces
    if match.group(0) == "{{user}}":
        return "{{{user}}}"
    return match.group(0)


@dataclass(frozen=True)
class DialogueTurn:
    """One example-dialogue line pulled out of an external format."""
    content: str
    speaker: Optional[Speaker] = None
    speaker_name: Optional[str] = None  # set for "Name:" lines with no placeholder


def _speaker_for(prefix: str) -> Speaker:
    return _PREFIX_SPEAKERS[prefix.lower()]


class MacroProcessor:
    """
    Placeholder translator between card macros and canonical tokens.

    - {{char}} ⇄ {character}
    - {{user}} ⇄ {user}

    to_internal only rewrites the exact lowercase card macros, so
    to_external(to_internal(text)) returns the original text whenever it
    contained no canonical tokens to begin with.
    """

    @staticmethod
    def to_internal(text: Optional[str]) -> str:
        """Card macros → canonical placeholders."""
        if not text:
            return ""
        text = _CARD_CHAR.sub("{character}", text)
        return _CARD_USER.sub("{user}", text)

    @staticmethod
    def to_external(text: Optional[str]) -> str:
        """Canonical placeholders → card macros."""
        if not isinstance(text, str) or not text:
            return ""
        return _OUTWARD_PATTERN.sub(_external_macro, text)


def extract_summary(description: str) -> str:
    """Brief summary of a persona: first sentence or ~150 chars."""
    if not description:
        return ""

    match = re.match(r"^([^.!?]+[.!?])", description)
    if match:
        summary = match.group(1).strip()
        if len(summary) <= 150:
            return summary

    if len(description) <= 150:
        return description

    truncated = description[:147]
    last_space = truncated.rfind(" ")
    if last_space > 100:
        return truncated[:last_space] + "..."
    return truncated + "..."


def segment_dialogue(blob: Optional[str]) -> List[DialogueTurn]:
    """
    Split a card's mes_example blob into speaker-tagged turns.

    <START> separators are dropped. Text before the first marker, and
    segments that end up empty, are discarded.
    """
    if not blob:
        return []

    text = _START_MARKER_PATTERN.sub("", blob).strip()
    turns = []
    first_start = None
    for match in DIALOGUE_SEGMENT_PATTERN.finditer(text):
        if first_start is None:
            first_start = match.start()
        content = MacroProcessor.to_internal(match.group(2).strip())
        if content:
            turns.append(DialogueTurn(content=content, speaker=_speaker_for(match.group(1))))

    residue = text if first_start is None else text[:first_start]
    if residue.strip():
        logger.warning(f"Discarded {len(residue.strip())} characters of unprefixed example dialogue")
    return turns


def parse_prefixed_message(text: Optional[str]) -> DialogueTurn:
    """
    Parse one archive example message with its inline speaker prefix.

    "#{user}: hi" → user turn; "Alice: hi" → named turn; no prefix → turn
    with no speaker (callers attribute it to the main character).
    """
    text = text or ""
    match = _LEADING_MARKER_PATTERN.match(text)
    if match:
        return DialogueTurn(
            content=text[match.end():].strip(),
            speaker=_speaker_for(match.group(1)),
        )

    named = _NAMED_SPEAKER_PATTERN.match(text)
    if named:
        return DialogueTurn(
            content=text[named.end():].strip(),
            speaker_name=named.group(1).strip(),
        )
    return DialogueTurn(content=text.strip())


def render_turn(speaker: Optional[Speaker], content: str, style: DialogueStyle) -> str:
    """Prefix one turn the way the target format expects."""
    if style is DialogueStyle.CARD:
        content = MacroProcessor.to_external(content)
    if speaker is None:
        return content
    return f"{_STYLE_PREFIXES[style][speaker]}\n{content}"


def render_dialogue(turns: Iterable[DialogueTurn], style: DialogueStyle) -> str:
    """Fold turns back into one flat text blob."""
    return "\n".join(render_turn(turn.speaker, turn.content, style) for turn in turns)
