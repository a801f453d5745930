"""
Tests for consultant reply parsing and the keyword fallback.
"""
import pytest

from services.directive_parser import (
    IMAGE,
    VIDEO,
    clean_reply,
    extract_directive,
    matches_generation_lexicon,
    matches_video_lexicon,
    parse_reply,
    prompt_from_message,
)


class TestExtractDirective:
    def test_image_directive_prompt_is_rest_of_line(self):
        reply = "Lovely idea!\nGENERATE_IMAGE: diamond solitaire ring, platinum band  \nAnything else?"
        directive = extract_directive(reply)
        assert directive.kind == IMAGE
        assert directive.prompt == "diamond solitaire ring, platinum band"

    def test_video_directive(self):
        directive = extract_directive("Here it comes. GENERATE_VIDEO: rotating gold hoop earrings")
        assert directive.kind == VIDEO
        assert directive.prompt == "rotating gold hoop earrings"

    def test_first_sentinel_wins(self):
        directive = extract_directive("GENERATE_VIDEO: spinning ring\nGENERATE_IMAGE: still ring")
        assert directive.kind == VIDEO
        assert directive.prompt == "spinning ring"

    def test_sentinel_at_end_of_text_gives_empty_prompt(self):
        directive = extract_directive("Creating it now. GENERATE_IMAGE:")
        assert directive is not None
        assert directive.prompt == ""

    @pytest.mark.parametrize("reply", ["", "Which metal would you like?", "generate_image lowercase is not a sentinel"])
    def test_no_directive(self, reply):
        assert extract_directive(reply) is None


class TestCleanReply:
    def test_sentinel_lines_removed(self):
        reply = "Beautiful choice!\n\nGENERATE_IMAGE: emerald pendant\n\n\nLet me know."
        cleaned = clean_reply(reply)
        assert "GENERATE_IMAGE" not in cleaned
        assert "emerald pendant" not in cleaned
        assert cleaned == "Beautiful choice!\n\nLet me know."

    def test_parse_reply_splits_text_and_directive(self):
        parsed = parse_reply("Great pick. GENERATE_IMAGE: ruby ring")
        assert parsed.text == "Great pick."
        assert parsed.directive.prompt == "ruby ring"


class TestLexicon:
    @pytest.mark.parametrize(
        "message",
        ["Create a diamond engagement ring", "I want gold EARRINGS", "show me an image", "a pendant please"],
    )
    def test_generation_lexicon_matches(self, message):
        assert matches_generation_lexicon(message)

    @pytest.mark.parametrize("message", ["What metals do you recommend for everyday wear?", "", None, "bring it"])
    def test_generation_lexicon_ignores(self, message):
        assert not matches_generation_lexicon(message)

    @pytest.mark.parametrize(
        "text",
        ["make a video", "show it rotating", "a 360-degree view", "let it spin", "Spinning slowly", "a short rotation"],
    )
    def test_video_lexicon_matches(self, text):
        assert matches_video_lexicon(text)

    def test_video_lexicon_ignores_still_requests(self):
        assert not matches_video_lexicon("a still photo of a ring")

    @pytest.mark.parametrize(
        "text", ["A pink spinel halo ring in rose gold", "Spinels and rotational symmetry", "clasp style 3600"]
    )
    def test_video_lexicon_needs_whole_words(self, text):
        assert not matches_video_lexicon(text)


class TestPromptFromMessage:
    def test_action_words_removed(self):
        assert prompt_from_message("Create an image of a gold ring") == "gold ring, professional jewelry photography style"

    def test_empty_subject_falls_back(self):
        assert prompt_from_message("generate an image!") == "elegant jewelry piece, professional jewelry photography style"
