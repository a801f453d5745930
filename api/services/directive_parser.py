"""
Parsing of the design consultant's reply text.

The consultant requests generation by ending its reply with a sentinel line such as
``GENERATE_IMAGE: diamond solitaire, platinum band``. This module turns that text
protocol into structured data so nothing else in the pipeline scans for markers.
"""
import re
from dataclasses import dataclass
from typing import List, Optional

from config.design_prompts import (
    ACTION_WORDS_PATTERN,
    DEFAULT_SUBJECT,
    GENERATE_IMAGE_TOKEN,
    GENERATE_VIDEO_TOKEN,
    GENERATION_LEXICON,
    LEXICON_PROMPT_SUFFIX,
    VIDEO_LEXICON,
)

IMAGE = "image"
VIDEO = "video"

_SENTINELS = {GENERATE_IMAGE_TOKEN: IMAGE, GENERATE_VIDEO_TOKEN: VIDEO}
_SENTINEL_RE = re.compile("|".join(re.escape(token) for token in _SENTINELS))
_SENTINEL_LINE_RE = re.compile("(?:" + _SENTINEL_RE.pattern + ")[^\n]*")


def _lexicon_pattern(words: List[str], whole_word: bool = False) -> re.Pattern:
    # Prefix match lets plurals ("rings", "earrings") and inflections ("created") count;
    # whole_word keeps "spin" from matching the gemstone "spinel"
    pattern = r"\b(?:" + "|".join(re.escape(w) for w in words) + r")"
    return re.compile(pattern + r"\b" if whole_word else pattern, re.IGNORECASE)


_GENERATION_RE = _lexicon_pattern(GENERATION_LEXICON)
_VIDEO_RE = _lexicon_pattern(VIDEO_LEXICON, whole_word=True)
_ACTION_WORDS_RE = re.compile(ACTION_WORDS_PATTERN, re.IGNORECASE)


@dataclass(frozen=True)
class GenerationDirective:
    """Generation request embedded in a consultant reply"""

    kind: str  # "image" or "video"
    prompt: str


@dataclass(frozen=True)
class ParsedReply:
    """Consultant reply split into user-facing text and an optional directive"""

    text: str
    directive: Optional[GenerationDirective] = None


def extract_directive(reply_text: str) -> Optional[GenerationDirective]:
    """
    Find the first sentinel in the reply and return its directive.

    The prompt is everything after the sentinel up to end of line (or end of text),
    trimmed. A sentinel with nothing after it yields an empty prompt, not an error.
    """
    if not reply_text:
        return None

    match = _SENTINEL_RE.search(reply_text)
    if not match:
        return None

    kind = _SENTINELS[match.group(0)]
    rest = reply_text[match.end():]
    prompt = rest.split("\n", 1)[0].strip()
    return GenerationDirective(kind=kind, prompt=prompt)


def clean_reply(reply_text: str) -> str:
    """Strip every sentinel and the rest of its line from the user-facing text."""
    if not reply_text:
        return ""
    cleaned = _SENTINEL_LINE_RE.sub("", reply_text)
    # Collapse the blank lines left behind by removed sentinel lines
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def parse_reply(reply_text: str) -> ParsedReply:
    return ParsedReply(text=clean_reply(reply_text), directive=extract_directive(reply_text))


def matches_generation_lexicon(message: Optional[str]) -> bool:
    """True when the raw user message talks about a jewelry piece or asks to create one."""
    return bool(message) and _GENERATION_RE.search(message) is not None


def matches_video_lexicon(text: Optional[str]) -> bool:
    """True when the text asks for motion: video, rotation, 360 views and so on."""
    return bool(text) and _VIDEO_RE.search(text) is not None


def prompt_from_message(message: Optional[str]) -> str:
    """
    Derive a prompt basis from the raw user message when the consultant gave none.

    Action words are dropped ("create an image of a gold ring" -> "gold ring").
    """
    subject = _ACTION_WORDS_RE.sub(" ", message or "")
    subject = re.sub(r"\s+", " ", subject).strip(" ,.!?")
    return f"{subject or DEFAULT_SUBJECT}{LEXICON_PROMPT_SUFFIX}"
