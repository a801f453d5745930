"""
Tests for provider prompt composition.
"""
import pytest

from config.design_prompts import NEGATIVE_PROMPTS, STYLE_CLAUSES
from services.prompt_compositor import RefinementContext, compose


class TestCompose:
    def test_plain_image_prompt(self):
        composed = compose("diamond solitaire ring")
        assert composed.prompt == f"jewelry product photography: diamond solitaire ring. {STYLE_CLAUSES['image']}"
        assert composed.negative_prompt == NEGATIVE_PROMPTS["image"]

    def test_reference_analysis_is_merged(self):
        composed = compose("similar ring in rose gold", reference_analysis="vintage halo setting with milgrain")
        assert "similar ring in rose gold, inspired by: vintage halo setting with milgrain" in composed.prompt

    def test_refinement_takes_priority_over_reference(self):
        refinement = RefinementContext(is_refinement=True, base_description="gold band", refinement_count=1)
        composed = compose("add a sapphire", reference_analysis="art deco", refinement=refinement)
        assert "refinement: Starting with gold band, now add a sapphire" in composed.prompt
        assert "inspired by" not in composed.prompt

    def test_refinement_without_base_uses_plain_form(self):
        refinement = RefinementContext(is_refinement=True, base_description="")
        composed = compose("add a sapphire", refinement=refinement)
        assert composed.prompt.startswith("jewelry product photography: add a sapphire.")

    def test_video_kind_uses_video_clauses(self):
        composed = compose("rotating pearl necklace", kind="video")
        assert composed.prompt.startswith("jewelry product video: rotating pearl necklace.")
        assert composed.prompt.endswith(STYLE_CLAUSES["video"])
        assert composed.negative_prompt == NEGATIVE_PROMPTS["video"]

    def test_deterministic(self):
        assert compose("ruby ring", reference_analysis="oval cut") == compose("ruby ring", reference_analysis="oval cut")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            compose("ruby ring", kind="hologram")
