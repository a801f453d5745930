"""
Generation provider adapters.

Each adapter wraps one image/video backend behind the same contract:

    await provider.generate(prompt, negative_prompt, options) -> GeneratedArtifact

and normalizes the backend's success shape (raw bytes, base64 field, list of URLs,
file objects) into a GeneratedArtifact. Any backend failure, timeout or empty
response leaves the adapter as ProviderError - SDK exception types never escape.
"""
import asyncio
import base64
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import aiohttp
import replicate
from google import genai
from google.genai import types

from core.config import settings
from core.exceptions import ProviderError
from services.artifact_store import make_artifact_filename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedArtifact:
    """A generated image or video; immutable once created"""

    kind: str  # "image" or "video"
    data: bytes
    mime_type: str
    filename: str
    provider: str
    model: str = ""
    durable_url: Optional[str] = None

    @property
    def inline_data(self) -> str:
        """Base64 payload for immediate display"""
        return base64.b64encode(self.data).decode()

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.inline_data}"


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request generation parameters shared by all adapters"""

    kind: str = "image"
    is_refinement: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if self.kind == "video":
            return "video"
        return "refined" if self.is_refinement else "catalog"


def status_from_exception(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status carried by an SDK exception."""
    for attr in ("provider_status", "code", "status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


_genai_client: Optional[genai.Client] = None


def get_genai_client() -> genai.Client:
    """Get or create the Google GenAI client (Vertex AI or API key)."""
    global _genai_client
    if _genai_client is None:
        if settings.google_use_vertexai:
            if not settings.google_cloud_project:
                raise ValueError("GOOGLE_CLOUD_PROJECT is required when GOOGLE_USE_VERTEXAI is enabled")
            _genai_client = genai.Client(
                vertexai=True,
                project=settings.google_cloud_project,
                location=settings.google_cloud_location,
            )
            logger.info(f"Google GenAI client initialized for Vertex AI ({settings.google_cloud_location})")
        else:
            if not settings.google_ai_api_key:
                raise ValueError("Google AI API key is required - set GOOGLE_AI_API_KEY environment variable")
            _genai_client = genai.Client(api_key=settings.google_ai_api_key)
            logger.info("Google GenAI client initialized with API key")
    return _genai_client


class GenerationProvider:
    """Base adapter: subclasses implement _generate and return a GeneratedArtifact"""

    name = "provider"
    kind = "image"
    timeout_seconds = 60.0

    def __init__(self):
        self.usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "total_processing_time": 0.0,
            "last_reset": datetime.now(),
        }

    async def _generate(self, prompt: str, negative_prompt: str, options: GenerationOptions) -> GeneratedArtifact:
        raise NotImplementedError

    async def generate(
        self,
        prompt: str,
        negative_prompt: str = "",
        options: Optional[GenerationOptions] = None,
    ) -> GeneratedArtifact:
        options = options or GenerationOptions(kind=self.kind)
        start_time = time.time()
        self.usage_stats["total_requests"] += 1

        try:
            artifact = await asyncio.wait_for(
                self._generate(prompt, negative_prompt, options),
                timeout=self.timeout_seconds,
            )
        except ProviderError:
            self.usage_stats["failed_requests"] += 1
            raise
        except asyncio.TimeoutError as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"{self.name} timed out after {self.timeout_seconds:.0f}s")
            raise ProviderError(self.name, f"timed out after {self.timeout_seconds:.0f}s", status_code=504) from e
        except Exception as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"{self.name} generation failed: {e}")
            raise ProviderError(self.name, e, status_code=status_from_exception(e)) from e

        processing_time = time.time() - start_time
        self.usage_stats["successful_requests"] += 1
        self.usage_stats["total_processing_time"] += processing_time
        logger.info(f"{self.name} generated {artifact.filename} in {processing_time:.2f}s")
        return artifact

    def get_usage_stats(self) -> Dict[str, Any]:
        return {
            **self.usage_stats,
            "success_rate": (
                self.usage_stats["successful_requests"] / max(self.usage_stats["total_requests"], 1) * 100
            ),
        }


class ImagenProvider(GenerationProvider):
    """Google Imagen through the GenAI SDK; returns raw PNG bytes"""

    name = "imagen"
    kind = "image"

    def __init__(self, client_factory: Callable[[], genai.Client] = get_genai_client, model: Optional[str] = None):
        super().__init__()
        self.client_factory = client_factory
        self.model = model or settings.imagen_model
        self.timeout_seconds = settings.image_timeout_seconds

    async def _generate(self, prompt: str, negative_prompt: str, options: GenerationOptions) -> GeneratedArtifact:
        client = self.client_factory()
        config = types.GenerateImagesConfig(
            number_of_images=1,
            aspect_ratio="1:1",
            negative_prompt=negative_prompt or None,
            output_mime_type="image/png",
            person_generation="DONT_ALLOW",
        )

        logger.info(f"Generating image with {self.model}...")
        response = await asyncio.to_thread(
            client.models.generate_images,
            model=self.model,
            prompt=prompt,
            config=config,
        )

        generated = getattr(response, "generated_images", None) or []
        image = generated[0].image if generated else None
        image_bytes = getattr(image, "image_bytes", None) if image else None
        if not image_bytes:
            raise ProviderError(self.name, "No image generated in response")

        return GeneratedArtifact(
            kind="image",
            data=image_bytes,
            mime_type=getattr(image, "mime_type", None) or "image/png",
            filename=make_artifact_filename(options.label, "png"),
            provider=self.name,
            model=self.model,
        )


class StableDiffusionProvider(GenerationProvider):
    """Stable Diffusion on Replicate; output arrives as file objects or URLs"""

    name = "stable_diffusion"
    kind = "image"

    def __init__(self, client: Optional[replicate.Client] = None, model: Optional[str] = None):
        super().__init__()
        self._client = client
        self.model = model or settings.replicate_model_stable_diffusion
        self.timeout_seconds = settings.image_timeout_seconds

    @property
    def client(self) -> replicate.Client:
        if self._client is None:
            if not settings.replicate_api_token:
                raise ProviderError(self.name, "Replicate API token not configured")
            self._client = replicate.Client(api_token=settings.replicate_api_token)
        return self._client

    async def _download(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise ProviderError(self.name, f"Failed to download output: HTTP {response.status}")
                return await response.read()

    async def _output_bytes(self, output: Any) -> bytes:
        if isinstance(output, (list, tuple)):
            if not output:
                raise ProviderError(self.name, "No image generated in response")
            output = output[0]

        if hasattr(output, "read"):
            return await asyncio.to_thread(output.read)
        if isinstance(output, str) and output.startswith("data:"):
            return base64.b64decode(output.split(",", 1)[1])
        if isinstance(output, str) and output.startswith("http"):
            return await self._download(output)
        raise ProviderError(self.name, f"Unexpected output format: {type(output).__name__}")

    async def _generate(self, prompt: str, negative_prompt: str, options: GenerationOptions) -> GeneratedArtifact:
        client = self.client
        logger.info(f"Generating image with Stable Diffusion ({self.model.split(':')[0]})...")
        output = await asyncio.to_thread(
            client.run,
            self.model,
            input={
                "prompt": prompt,
                "negative_prompt": negative_prompt,
                "width": settings.replicate_image_size,
                "height": settings.replicate_image_size,
                "num_inference_steps": settings.replicate_inference_steps,
                "guidance_scale": settings.replicate_guidance_scale,
            },
        )

        image_bytes = await self._output_bytes(output)
        if not image_bytes:
            raise ProviderError(self.name, "Empty image payload")

        return GeneratedArtifact(
            kind="image",
            data=image_bytes,
            mime_type="image/png",
            filename=make_artifact_filename(options.label, "png"),
            provider=self.name,
            model=self.model.split(":")[0],
        )


class VeoProvider(GenerationProvider):
    """
    Google Veo video generation.

    Tries model variants in order (fastest/cheapest first) before giving up; this
    nested chain is scoped to the one provider family trusted for video.
    """

    name = "veo"
    kind = "video"

    def __init__(
        self,
        client_factory: Callable[[], genai.Client] = get_genai_client,
        models: Optional[List[str]] = None,
        poll_interval: Optional[float] = None,
    ):
        super().__init__()
        self.client_factory = client_factory
        self.models = list(models or settings.veo_models)
        self.poll_interval = settings.video_poll_interval_seconds if poll_interval is None else poll_interval
        self.timeout_seconds = settings.video_timeout_seconds

    def _run_operation(self, client: genai.Client, model: str, prompt: str, negative_prompt: str, deadline: float):
        """Start a long-running video operation and poll it to completion (runs in a worker thread)."""
        operation = client.models.generate_videos(
            model=model,
            prompt=prompt,
            config=types.GenerateVideosConfig(
                number_of_videos=1,
                aspect_ratio="16:9",
                negative_prompt=negative_prompt or None,
            ),
        )
        while not operation.done:
            if time.monotonic() > deadline:
                raise TimeoutError(f"{model} did not finish before the deadline")
            time.sleep(self.poll_interval)
            operation = client.operations.get(operation)

        if getattr(operation, "error", None):
            raise RuntimeError(f"{model} operation failed: {operation.error}")

        result = getattr(operation, "response", None) or getattr(operation, "result", None)
        videos = getattr(result, "generated_videos", None) or []
        if not videos or not videos[0].video:
            raise RuntimeError("No video generated in response")

        video = videos[0].video
        if getattr(video, "video_bytes", None):
            return video.video_bytes, getattr(video, "mime_type", None) or "video/mp4"
        # Gemini API returns a file handle instead of inline bytes
        return client.files.download(file=video), "video/mp4"

    async def _generate(self, prompt: str, negative_prompt: str, options: GenerationOptions) -> GeneratedArtifact:
        client = self.client_factory()
        deadline = time.monotonic() + self.timeout_seconds
        last_error: Optional[BaseException] = None

        for model in self.models:
            try:
                logger.info(f"Generating video with {model}...")
                video_bytes, mime_type = await asyncio.to_thread(
                    self._run_operation, client, model, prompt, negative_prompt, deadline
                )
            except Exception as e:
                last_error = e
                logger.error(f"{model} failed: {e}")
                continue

            if not video_bytes:
                last_error = RuntimeError(f"{model} returned an empty video payload")
                continue

            logger.info(f"Video generated successfully using {model}")
            return GeneratedArtifact(
                kind="video",
                data=video_bytes,
                mime_type=mime_type,
                filename=make_artifact_filename(f"video-{model}", "mp4"),
                provider=self.name,
                model=model,
            )

        raise ProviderError(
            self.name,
            last_error or "no video models configured",
            status_code=status_from_exception(last_error) if last_error else None,
        )


IMAGE_PROVIDER_FACTORIES: Dict[str, Callable[[], GenerationProvider]] = {
    "imagen": ImagenProvider,
    "stable_diffusion": StableDiffusionProvider,
}


def build_image_providers(order: Optional[List[str]] = None) -> List[GenerationProvider]:
    """Instantiate image adapters in the configured priority order."""
    providers = []
    for name in order or settings.image_provider_order:
        factory = IMAGE_PROVIDER_FACTORIES.get(name)
        if factory is None:
            logger.warning(f"Unknown image provider '{name}' in IMAGE_PROVIDER_ORDER - skipping")
            continue
        providers.append(factory())
    return providers
