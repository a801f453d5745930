"""
Prompt compositor: builds the final provider prompt for a generation request.

Pure functions only - no network, no clock, no randomness - so identical inputs always
produce identical prompts.
"""
from dataclasses import dataclass
from typing import Optional

from config.design_prompts import NEGATIVE_PROMPTS, STYLE_CLAUSES, STYLE_PREFIX


@dataclass(frozen=True)
class RefinementContext:
    """Refinement of a previously generated design (counter is client-supplied)"""

    is_refinement: bool = False
    base_description: str = ""
    refinement_count: int = 0


@dataclass(frozen=True)
class ComposedPrompt:
    prompt: str
    negative_prompt: str


def compose(
    base_prompt: str,
    kind: str = "image",
    reference_analysis: Optional[str] = None,
    refinement: Optional[RefinementContext] = None,
) -> ComposedPrompt:
    """
    Merge the directive prompt with visual and conversational context.

    Priority: refinement (with a base description) > reference analysis > plain prompt.

    Args:
        base_prompt: Prompt from the consultant's directive or the lexicon fallback
        kind: "image" or "video"; selects the style clauses and negative prompt
        reference_analysis: Vision analysis of an uploaded reference photo
        refinement: Refinement context for modifying a previous design

    Returns:
        ComposedPrompt with the provider prompt and exclusion prompt
    """
    if kind not in STYLE_CLAUSES:
        raise ValueError(f"Unknown generation kind: {kind}")

    base_prompt = (base_prompt or "").strip()
    prefix = STYLE_PREFIX[kind]

    if refinement and refinement.is_refinement and refinement.base_description:
        body = f"{prefix} refinement: Starting with {refinement.base_description}, now {base_prompt}"
    elif reference_analysis and reference_analysis.strip():
        body = f"{prefix}: {base_prompt}, inspired by: {reference_analysis.strip()}"
    else:
        body = f"{prefix}: {base_prompt}"

    return ComposedPrompt(
        prompt=f"{body}. {STYLE_CLAUSES[kind]}",
        negative_prompt=NEGATIVE_PROMPTS[kind],
    )
