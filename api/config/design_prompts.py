"""
Prompt and vocabulary definitions for the jewelry design studio.

These are used by:
1. The design consultant (system policy, vision instruction)
2. The prompt compositor (catalog style clauses, negative prompts)
3. The chat orchestrator (generation / video lexicons)
"""

# Sentinels the consultant appends to request generation
GENERATE_IMAGE_TOKEN = "GENERATE_IMAGE:"
GENERATE_VIDEO_TOKEN = "GENERATE_VIDEO:"

DESIGNER_SYSTEM_POLICY = """You are a jewelry designer assistant. Keep responses brief and focused (2-3 sentences max). A retailer is asking you to create a catalog image of jewelry based on a consumer request."""

REFERENCE_POLICY_TEMPLATE = """

Reference image shows: {analysis}

Create a design inspired by this reference."""

REFINEMENT_POLICY_TEMPLATE = """

REFINEMENT MODE: You are refining an existing jewelry design. The user wants to modify the current design.
Previous design: {base_description}
This is refinement #{refinement_number}.

Focus on the specific changes requested while maintaining the overall jewelry aesthetic."""

FORMATTING_POLICY = f"""

IMPORTANT FORMATTING:
- Keep responses concise and professional
- Use **bold** for emphasis on key details
- Always end with: {GENERATE_IMAGE_TOKEN} [jewelry type and key details only]

For non-jewelry questions, simply say "I can only create jewelry images. What piece would you like me to design?"

The {GENERATE_IMAGE_TOKEN} description should be brief: just the jewelry type, main materials, and key visual features (e.g., "diamond solitaire engagement ring, platinum band, round brilliant cut").

For video requests, end with: {GENERATE_VIDEO_TOKEN} [same brief description for rotating jewelry showcase]"""

VISION_SYSTEM_INSTRUCTION = """You are a jewelry expert. Analyze the provided image and describe the jewelry piece in detail, focusing on:
- Type of jewelry (ring, necklace, earrings, etc.)
- Materials visible (gold, silver, gemstones, etc.)
- Style and design elements
- Setting types
- Color scheme
- Overall aesthetic
Keep the description concise but detailed enough for jewelry photography generation."""

VISION_USER_INSTRUCTION = (
    "Please analyze this jewelry image and provide a detailed description for jewelry photography purposes."
)

# Used whenever vision analysis fails so the pipeline can continue
NEUTRAL_REFERENCE_DESCRIPTION = "elegant jewelry piece with refined craftsmanship"

# User turns the orchestrator sends when the widget supplies no usable text
REFERENCE_ONLY_MESSAGE = "Please create jewelry inspired by this reference image"
REFINEMENT_MESSAGE_PREFIX = "Please refine the current design: "

DEFAULT_BASE_DESCRIPTION = "elegant jewelry piece (previous design)"
DEFAULT_SUBJECT = "elegant jewelry piece"
LEXICON_PROMPT_SUFFIX = ", professional jewelry photography style"

# Catalog look per generation kind: plain background, fixed angle, studio lighting
STYLE_PREFIX = {
    "image": "jewelry product photography",
    "video": "jewelry product video",
}

STYLE_CLAUSES = {
    "image": "MUST BE: pure white background, three-quarter view angle, professional studio lighting, sparkling reflections",
    "video": (
        "MUST BE: pure white background, rotating three-quarter view showcase, professional studio lighting, "
        "sparkling reflections, smooth rotation, 360-degree turn, luxury presentation"
    ),
}

NEGATIVE_PROMPTS = {
    "image": (
        "colored background, dark background, gray background, black background, textured background, "
        "pattern background, front view, side view, back view, top view, multiple angles, blurry, low quality, "
        "hands, people, multiple items, text, watermark, shadows on background"
    ),
    "video": (
        "colored background, dark background, textured background, jerky motion, camera shake, blurry, "
        "low quality, hands, people, multiple items, text, watermark"
    ),
}

# Words that mark a message as a jewelry/generation request even without a directive
GENERATION_LEXICON = [
    "ring",
    "jewelry",
    "jewellery",
    "diamond",
    "necklace",
    "bracelet",
    "earring",
    "pendant",
    "engagement",
    "wedding",
    "generate",
    "create",
    "image",
]

# Words that switch generation from still image to video
VIDEO_LEXICON = [
    "video",
    "videos",
    "rotate",
    "rotates",
    "rotating",
    "rotation",
    "360",
    "spin",
    "spins",
    "spinning",
    "animation",
    "animated",
    "moving",
]

# Removed from a raw user message before it is used as a prompt basis
ACTION_WORDS_PATTERN = r"\b(generate|create|image|video|of|an?)\b"
