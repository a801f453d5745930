"""
Chat orchestrator: runs one widget chat turn end to end.

    ReceivedInput -> [reference analysis] -> Consulted
        -> Decided (none | image | video)
        -> GenerationAttempted (fallback chain for images, quota queue for video)
        -> ResponseAssembled

Generation failures never fail the turn: the consultant's text is always returned,
with imageUrl/videoUrl left null. The one exception is strict mode, where an
exhausted image chain propagates so operators see the root cause.
"""
import time
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from config.design_prompts import (
    DEFAULT_BASE_DESCRIPTION,
    DESIGNER_SYSTEM_POLICY,
    FORMATTING_POLICY,
    REFERENCE_ONLY_MESSAGE,
    REFERENCE_POLICY_TEMPLATE,
    REFINEMENT_MESSAGE_PREFIX,
    REFINEMENT_POLICY_TEMPLATE,
)
from core.config import settings
from core.exceptions import AllProvidersExhausted, InputError, QuotaExceeded, StorageError
from middleware.logging_middleware import get_logger
from schemas.chat import ArtifactMetadata, ChatRequest, ChatResponse, ContentType, ReferenceImageInfo
from services.artifact_store import ArtifactStore, get_artifact_store, make_artifact_filename
from services.design_oracle import DesignOracle, OracleReply, design_oracle
from services.directive_parser import (
    IMAGE,
    VIDEO,
    matches_generation_lexicon,
    matches_video_lexicon,
    prompt_from_message,
)
from services.fallback_chain import FallbackChain
from services.generation_providers import GeneratedArtifact, GenerationOptions, build_image_providers
from services.prompt_compositor import RefinementContext, compose
from services.reference_image import ReferenceImageContext, build_reference_context
from services.video_queue import VideoGenerationQueue, get_video_queue

logger = get_logger(__name__)

IMAGE_UNAVAILABLE_MESSAGE = "Image generation is temporarily unavailable. Please try again in a moment."
VIDEO_UNAVAILABLE_MESSAGE = "Video generation is temporarily unavailable. Please try again in a moment."


@dataclass
class ReferenceUpload:
    """Raw multipart upload before normalization"""

    data: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None


@dataclass(frozen=True)
class GenerationDecision:
    should_generate: bool
    kind: str = IMAGE
    reason: str = ""


def decide_generation(
    message: str,
    reply: OracleReply,
    has_reference: bool,
    is_refinement: bool,
) -> GenerationDecision:
    """
    Decide whether this turn produces an artifact, and whether it is image or video.

    Generation happens when the consultant emitted a directive, the message matches the
    jewelry/action lexicon, a reference image was supplied, or the turn is a refinement.
    """
    if reply.directive:
        reason = "directive"
    elif matches_generation_lexicon(message):
        reason = "lexicon"
    elif has_reference:
        reason = "reference_image"
    elif is_refinement:
        reason = "refinement"
    else:
        return GenerationDecision(should_generate=False)

    if reply.directive:
        # An explicit image directive is only overridden by the user asking for motion
        wants_video = reply.directive.kind == VIDEO or matches_video_lexicon(message)
    else:
        wants_video = matches_video_lexicon(message) or matches_video_lexicon(reply.raw_text)
    return GenerationDecision(should_generate=True, kind=VIDEO if wants_video else IMAGE, reason=reason)


def refinement_from_request(request: ChatRequest) -> RefinementContext:
    if not request.isRefinement:
        return RefinementContext(refinement_count=request.refinementCount)

    base_description = ""
    base = request.baseImageData
    if base:
        metadata = base.get("metadata") if isinstance(base.get("metadata"), dict) else {}
        base_description = (
            base.get("prompt") or base.get("description") or metadata.get("prompt") or DEFAULT_BASE_DESCRIPTION
        )
    return RefinementContext(
        is_refinement=True,
        base_description=str(base_description).strip(),
        refinement_count=request.refinementCount,
    )


def build_system_policy(reference: Optional[ReferenceImageContext], refinement: RefinementContext) -> str:
    policy = DESIGNER_SYSTEM_POLICY
    if reference is not None:
        policy += REFERENCE_POLICY_TEMPLATE.format(analysis=reference.analysis_text)
    if refinement.is_refinement:
        policy += REFINEMENT_POLICY_TEMPLATE.format(
            base_description=refinement.base_description or DEFAULT_BASE_DESCRIPTION,
            refinement_number=refinement.refinement_count + 1,
        )
    return policy + FORMATTING_POLICY


def user_turn_text(message: str, has_reference: bool, is_refinement: bool) -> str:
    message = message.strip()
    if is_refinement:
        return f"{REFINEMENT_MESSAGE_PREFIX}{message}"
    if not message and has_reference:
        return REFERENCE_ONLY_MESSAGE
    return message


class ChatOrchestrator:
    """Wires the consultant, prompt compositor, generators and artifact store per chat turn"""

    def __init__(
        self,
        oracle: DesignOracle,
        image_chain: FallbackChain,
        video_queue: VideoGenerationQueue,
        artifact_store: ArtifactStore,
        strict_generation_errors: bool = False,
    ):
        self.oracle = oracle
        self.image_chain = image_chain
        self.video_queue = video_queue
        self.artifact_store = artifact_store
        self.strict_generation_errors = strict_generation_errors

    async def handle_turn(self, request: ChatRequest, upload: Optional[ReferenceUpload] = None) -> ChatResponse:
        """
        Run one chat turn.

        Raises:
            InputError: malformed upload or empty turn
            OracleError: the consultant call failed
            AllProvidersExhausted: image generation failed in strict mode
        """
        if not request.message.strip() and upload is None and not request.isRefinement:
            raise InputError("message is required when no reference image is supplied")

        refinement = refinement_from_request(request)
        logger.info(
            f"Processing chat turn (refinement={refinement.is_refinement}, "
            f"reference={upload is not None}, count={refinement.refinement_count})"
        )

        reference = await self._prepare_reference(upload) if upload is not None else None

        reply = await self.oracle.consult(
            request.conversationHistory,
            user_turn_text(request.message, reference is not None, refinement.is_refinement),
            build_system_policy(reference, refinement),
        )

        decision = decide_generation(request.message, reply, reference is not None, refinement.is_refinement)
        artifact: Optional[GeneratedArtifact] = None
        generation_error: Optional[str] = None
        base_prompt: Optional[str] = None

        if decision.should_generate:
            base_prompt = self._base_prompt(request.message, reply)
            composed = compose(
                base_prompt,
                kind=decision.kind,
                reference_analysis=reference.analysis_text if reference else None,
                refinement=refinement,
            )
            options = GenerationOptions(kind=decision.kind, is_refinement=refinement.is_refinement)
            logger.info(f"Generating {decision.kind} ({decision.reason}) with prompt: {composed.prompt[:120]}")

            if decision.kind == VIDEO:
                artifact, generation_error = await self._generate_video(composed.prompt, composed.negative_prompt, options)
            else:
                artifact, generation_error = await self._generate_image(composed.prompt, composed.negative_prompt, options)

            if artifact is not None:
                artifact = await self._persist(artifact)
        else:
            logger.info("No generation requested for this turn")

        return self._assemble(reply, artifact, reference, refinement, base_prompt, generation_error)

    async def _prepare_reference(self, upload: ReferenceUpload) -> ReferenceImageContext:
        reference = build_reference_context(upload.data, upload.content_type)

        filename = make_artifact_filename("reference", "jpg", prefix=None)
        try:
            reference.stored_url = await self.artifact_store.put(reference.normalized_bytes, filename, reference.mime_type)
            reference.filename = filename
        except StorageError as e:
            logger.warning(f"Reference image not persisted: {e.message}")

        reference.analysis_text = await self.oracle.analyze_image(reference.base64_data, reference.mime_type)
        return reference

    @staticmethod
    def _base_prompt(message: str, reply: OracleReply) -> str:
        if reply.directive and reply.directive.prompt:
            return reply.directive.prompt
        return prompt_from_message(message)

    async def _generate_image(
        self, prompt: str, negative_prompt: str, options: GenerationOptions
    ) -> Tuple[Optional[GeneratedArtifact], Optional[str]]:
        try:
            return await self.image_chain.generate(prompt, negative_prompt, options), None
        except AllProvidersExhausted as e:
            if self.strict_generation_errors:
                raise
            logger.error(f"All image generation methods failed: {e.message}")
            return None, IMAGE_UNAVAILABLE_MESSAGE

    async def _generate_video(
        self, prompt: str, negative_prompt: str, options: GenerationOptions
    ) -> Tuple[Optional[GeneratedArtifact], Optional[str]]:
        # Only one provider family is trusted for video, so there is no image fallback here
        try:
            return await self.video_queue.enqueue(prompt, negative_prompt, options), None
        except QuotaExceeded as e:
            logger.error(f"Video generation quota exhausted: {e.message}")
            return None, e.user_message
        except Exception as e:
            logger.exception(f"Video generation error: {e}")
            return None, VIDEO_UNAVAILABLE_MESSAGE

    async def _persist(self, artifact: GeneratedArtifact) -> GeneratedArtifact:
        """Store the artifact durably; on failure keep serving the inline payload."""
        try:
            url = await self.artifact_store.put(artifact.data, artifact.filename, artifact.mime_type)
        except StorageError as e:
            logger.warning(f"Durable upload failed for {artifact.filename}, returning inline only: {e.message}")
            return artifact
        return replace(artifact, durable_url=url)

    @staticmethod
    def _assemble(
        reply: OracleReply,
        artifact: Optional[GeneratedArtifact],
        reference: Optional[ReferenceImageContext],
        refinement: RefinementContext,
        base_prompt: Optional[str],
        generation_error: Optional[str],
    ) -> ChatResponse:
        refinement_count = refinement.refinement_count + (1 if refinement.is_refinement else 0)
        reference_info = ReferenceImageInfo(**reference.to_response()) if reference else None
        is_video = artifact is not None and artifact.kind == VIDEO

        metadata = None
        if artifact is not None:
            metadata = ArtifactMetadata(
                filename=artifact.filename,
                type=artifact.mime_type,
                downloadable=True,
                publicUrl=artifact.durable_url,
                referenceImage=reference_info,
                isVideo=is_video,
                isRefinement=refinement.is_refinement,
                refinementCount=refinement_count,
                modelUsed=artifact.model or artifact.provider,
                provider=artifact.provider,
                prompt=base_prompt,
            )

        data_url = artifact.data_url if artifact is not None else None
        return ChatResponse(
            message=reply.text,
            imageUrl=data_url if artifact is not None and not is_video else None,
            videoUrl=data_url if is_video else None,
            publicUrl=artifact.durable_url if artifact is not None else None,
            downloadUrl=data_url,
            conversationId=int(time.time() * 1000),
            referenceImage=reference_info,
            contentType=ContentType.video if is_video else ContentType.image,
            isRefinement=refinement.is_refinement,
            refinementCount=refinement_count,
            generationError=generation_error,
            metadata=metadata,
        )


_chat_orchestrator: Optional[ChatOrchestrator] = None


def get_chat_orchestrator() -> ChatOrchestrator:
    """Get or create the chat orchestrator wired to the configured services."""
    global _chat_orchestrator
    if _chat_orchestrator is None:
        _chat_orchestrator = ChatOrchestrator(
            oracle=design_oracle,
            image_chain=FallbackChain(build_image_providers()),
            video_queue=get_video_queue(),
            artifact_store=get_artifact_store(),
            strict_generation_errors=settings.strict_generation_errors,
        )
    return _chat_orchestrator
