"""
Design consultant service: drafts the assistant reply for a chat turn and analyzes
uploaded reference photos, both through the OpenAI chat completions API.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import openai

from config.design_prompts import NEUTRAL_REFERENCE_DESCRIPTION, VISION_SYSTEM_INSTRUCTION, VISION_USER_INSTRUCTION
from core.config import settings
from core.exceptions import OracleError, VisionAnalysisError
from services.directive_parser import GenerationDirective, parse_reply

logger = logging.getLogger(__name__)

ALLOWED_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class OracleReply:
    """Consultant reply: raw model text, cleaned user-facing text and parsed directive"""

    raw_text: str
    text: str
    directive: Optional[GenerationDirective] = None


def _content_part_to_openai(part: Any) -> Optional[Dict[str, Any]]:
    """Translate one widget content part to the OpenAI content-part format."""
    if isinstance(part, str):
        return {"type": "text", "text": part}
    if not isinstance(part, dict):
        return None

    part_type = part.get("type")
    if part_type == "text" and part.get("text"):
        return {"type": "text", "text": part["text"]}
    if part_type == "image":
        # Widget history keeps inline images as {source: {type: base64, media_type, data}}
        source = part.get("source") or {}
        if source.get("type") == "base64" and source.get("data"):
            media_type = source.get("media_type", "image/jpeg")
            return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{source['data']}"}}
        if source.get("type") == "url" and source.get("url"):
            return {"type": "image_url", "image_url": {"url": source["url"]}}
    if part_type == "image_url":
        image_url = part.get("image_url")
        url = image_url.get("url") if isinstance(image_url, dict) else image_url
        if url:
            return {"type": "image_url", "image_url": {"url": url}}
    return None


def history_to_messages(history: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert caller-supplied history to OpenAI messages.

    Turns with any role other than user/assistant (notably "system") are dropped:
    the system policy only ever comes from the server.
    """
    messages = []
    dropped = 0
    for turn in history or []:
        if not isinstance(turn, dict) or turn.get("role") not in ALLOWED_ROLES:
            dropped += 1
            continue

        content = turn.get("content")
        if isinstance(content, str):
            if content.strip():
                messages.append({"role": turn["role"], "content": content})
            continue

        if isinstance(content, list):
            parts = [p for p in (_content_part_to_openai(part) for part in content) if p]
            if turn["role"] == "assistant":
                # Assistant turns only accept text
                text = "\n".join(p["text"] for p in parts if p["type"] == "text")
                if text:
                    messages.append({"role": "assistant", "content": text})
            elif parts:
                messages.append({"role": "user", "content": parts})

    if dropped:
        logger.info(f"Dropped {dropped} history turn(s) with disallowed roles")
    return messages


class DesignOracle:
    """Stateless wrapper around the conversational model"""

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None):
        self._client = client
        self.usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "vision_fallbacks": 0,
            "total_tokens": 0,
            "last_reset": datetime.now(),
        }
        if client is None and not settings.openai_api_key:
            logger.warning("OpenAI API key not configured - design consultation will not be functional")

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise OracleError("OpenAI API key not configured", details={"hasOpenAIKey": False})
            self._client = openai.AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.openai_timeout,
                max_retries=2,
            )
        return self._client

    async def consult(
        self,
        history: List[Dict[str, Any]],
        user_message: str,
        system_policy: str,
    ) -> OracleReply:
        """
        Ask the consultant for the next reply.

        Args:
            history: Prior turns supplied by the caller (system turns are discarded)
            user_message: The current user turn
            system_policy: Server-side system prompt

        Returns:
            OracleReply with the cleaned text and optional generation directive

        Raises:
            OracleError: if the model call fails or returns no text
        """
        messages = [{"role": "system", "content": system_policy}]
        messages.extend(history_to_messages(history))
        messages.append({"role": "user", "content": user_message})

        start_time = time.time()
        self.usage_stats["total_requests"] += 1
        try:
            response = await self.client.chat.completions.create(
                model=settings.openai_model,
                messages=messages,
                max_tokens=settings.openai_max_tokens,
                temperature=settings.openai_temperature,
            )
        except openai.OpenAIError as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"Design consultation failed: {e}")
            raise OracleError(f"Design consultation failed: {e}", details={"type": type(e).__name__}) from e

        raw_text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not raw_text:
            self.usage_stats["failed_requests"] += 1
            raise OracleError("Design consultant returned an empty reply")

        self.usage_stats["successful_requests"] += 1
        if getattr(response, "usage", None):
            self.usage_stats["total_tokens"] += response.usage.total_tokens or 0

        parsed = parse_reply(raw_text)
        logger.info(
            f"Consultation completed in {time.time() - start_time:.2f}s "
            f"(directive={parsed.directive.kind if parsed.directive else None})"
        )
        return OracleReply(raw_text=raw_text, text=parsed.text, directive=parsed.directive)

    async def _request_analysis(self, base64_image: str, mime_type: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=settings.openai_vision_model,
                max_tokens=settings.openai_vision_max_tokens,
                messages=[
                    {"role": "system", "content": VISION_SYSTEM_INSTRUCTION},
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{base64_image}"}},
                            {"type": "text", "text": VISION_USER_INSTRUCTION},
                        ],
                    },
                ],
            )
        except (openai.OpenAIError, OracleError) as e:
            raise VisionAnalysisError(f"Reference analysis failed: {e}") from e

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise VisionAnalysisError("Reference analysis returned no text")
        return text

    async def analyze_image(self, base64_image: str, mime_type: str = "image/jpeg") -> str:
        """
        Describe a reference jewelry photo.

        Never raises: on any failure a neutral description is returned so the turn
        can proceed without the reference.
        """
        try:
            analysis = await self._request_analysis(base64_image, mime_type)
            logger.info(f"Reference image analysis: {analysis[:150]}")
            return analysis
        except VisionAnalysisError as e:
            self.usage_stats["vision_fallbacks"] += 1
            logger.warning(f"{e} - using neutral description")
            return NEUTRAL_REFERENCE_DESCRIPTION

    def get_usage_stats(self) -> Dict[str, Any]:
        return {
            **self.usage_stats,
            "success_rate": (
                self.usage_stats["successful_requests"] / max(self.usage_stats["total_requests"], 1) * 100
            ),
        }


# Global service instance
design_oracle = DesignOracle()
