"""
Quota-aware request queue for video generation.

Video generation has a strict per-minute quota, so every video request in the
process goes through one FIFO queue with a single drain loop:

    enqueue() -> [Idle -> Draining] -> per entry:
        1. reject entries older than the queue timeout
        2. keep a minimum interval since the last successful dispatch
        3. wait while the rolling quota window is full
        4. dispatch with retry (exponential backoff on quota errors)
        5. record the dispatch, cool down, continue
    -> queue empty -> Idle

The drain flag, the queue and the quota window are owned by this class and only
mutated from the event loop thread, so check-and-set of the drain flag is atomic
(there is no await between the check and the set).
"""
import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from core.config import settings
from core.exceptions import JewelryStudioError, QueueTimeoutError, QuotaExceeded
from middleware.logging_middleware import get_logger, get_request_id, request_id_var
from services.generation_providers import (
    GeneratedArtifact,
    GenerationOptions,
    GenerationProvider,
    VeoProvider,
    status_from_exception,
)

logger = get_logger(__name__)

QUOTA_ERROR_MARKERS = ("429", "quota exceeded", "resource_exhausted", "rate limit")


def is_quota_error(error: BaseException) -> bool:
    """True for HTTP 429 or a provider 'quota exceeded' style message."""
    if status_from_exception(error) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in QUOTA_ERROR_MARKERS)


@dataclass
class QueueEntry:
    prompt: str
    negative_prompt: str
    options: GenerationOptions
    enqueue_time: float
    future: asyncio.Future
    request_id: str = ""


@dataclass
class QuotaWindow:
    """
    Rolling quota window.

    Holds the completion times of successful dispatches younger than the window
    duration; the oldest one is the window start and the count is the window usage.
    """

    duration: float
    dispatches: Deque[float] = field(default_factory=deque)
    last_request_time: Optional[float] = None

    def prune(self, now: float) -> None:
        while self.dispatches and now - self.dispatches[0] >= self.duration:
            self.dispatches.popleft()

    @property
    def window_start(self) -> Optional[float]:
        return self.dispatches[0] if self.dispatches else None

    @property
    def request_count(self) -> int:
        return len(self.dispatches)

    def record(self, now: float) -> None:
        self.dispatches.append(now)
        self.last_request_time = now


class VideoGenerationQueue:
    """Serialized, rate-limited front for a quota-constrained generation provider"""

    def __init__(
        self,
        provider: GenerationProvider,
        min_request_interval: float = 0.6,
        max_requests_per_window: int = 100,
        window_duration: float = 60.0,
        queue_timeout: float = 300.0,
        max_attempts: int = 3,
        quota_backoff_base: float = 10.0,
        retry_delay: float = 2.0,
        cooldown: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.min_request_interval = min_request_interval
        self.max_requests_per_window = max_requests_per_window
        self.queue_timeout = queue_timeout
        self.max_attempts = max_attempts
        self.quota_backoff_base = quota_backoff_base
        self.retry_delay = retry_delay
        self.cooldown = cooldown
        self._clock = clock
        self._sleep = sleep

        self.window = QuotaWindow(duration=window_duration)
        self._entries: Deque[QueueEntry] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        return "draining" if self._draining else "idle"

    @property
    def depth(self) -> int:
        return len(self._entries)

    async def enqueue(
        self,
        prompt: str,
        negative_prompt: str = "",
        options: Optional[GenerationOptions] = None,
    ) -> GeneratedArtifact:
        """
        Queue a generation request and wait for its outcome.

        The caller's cancellation is not propagated: an abandoned entry is still
        processed (or rejected as stale) in order.
        """
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(self._retrieve_outcome)
        self._entries.append(
            QueueEntry(
                prompt=prompt,
                negative_prompt=negative_prompt,
                options=options or GenerationOptions(kind="video"),
                enqueue_time=self._clock(),
                future=future,
                request_id=get_request_id(),
            )
        )
        self._start_drain()
        return await asyncio.shield(future)

    def _start_drain(self) -> None:
        # Check and set with no await in between: at most one drain loop
        if self._draining:
            return
        self._draining = True
        self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        logger.info(f"Processing video queue: {len(self._entries)} requests pending")
        try:
            while self._entries:
                entry = self._entries.popleft()
                request_id_var.set(entry.request_id)
                try:
                    result = await self._process(entry)
                except asyncio.CancelledError:
                    self._resolve(entry, error=JewelryStudioError("Video queue shut down"))
                    raise
                except Exception as e:
                    logger.error(f"Video generation failed: {e}")
                    self._resolve(entry, error=e)
                    continue

                self._resolve(entry, result=result)
                # Politeness margin on top of the minimum interval
                await self._sleep(self.cooldown)
        finally:
            self._draining = False
            logger.info("Video queue processing completed")

    @staticmethod
    def _retrieve_outcome(future: asyncio.Future) -> None:
        # Marks the exception as retrieved when the waiting caller was cancelled
        if not future.cancelled():
            future.exception()

    @staticmethod
    def _resolve(entry: QueueEntry, result: Optional[GeneratedArtifact] = None, error: Optional[BaseException] = None):
        if entry.future.done():
            return
        if error is not None:
            entry.future.set_exception(error)
        else:
            entry.future.set_result(result)

    async def _process(self, entry: QueueEntry) -> GeneratedArtifact:
        age = self._clock() - entry.enqueue_time
        if age > self.queue_timeout:
            raise QueueTimeoutError(
                "Request timed out in queue",
                details={"ageSeconds": round(age, 1), "timeoutSeconds": self.queue_timeout},
            )

        await self._wait_for_spacing()
        await self._wait_for_quota()

        result = await self._dispatch_with_retry(entry)

        now = self._clock()
        self.window.record(now)
        logger.info(
            f"Quota usage: {self.window.request_count}/{self.max_requests_per_window} requests this window"
        )
        return result

    async def _wait_for_spacing(self) -> None:
        last = self.window.last_request_time
        if last is None:
            return
        elapsed = self._clock() - last
        if elapsed < self.min_request_interval:
            wait_time = self.min_request_interval - elapsed
            logger.info(f"Rate limiting: waiting {wait_time * 1000:.0f}ms before next video request")
            await self._sleep(wait_time)

    async def _wait_for_quota(self) -> None:
        self.window.prune(self._clock())
        while self.window.request_count >= self.max_requests_per_window:
            reset_in = self.window.window_start + self.window.duration - self._clock()
            if reset_in > 0:
                logger.info(f"Quota exhausted, waiting {reset_in * 1000:.0f}ms for reset")
                await self._sleep(reset_in)
            self.window.prune(self._clock())
        logger.debug("Quota window has capacity")

    async def _dispatch_with_retry(self, entry: QueueEntry) -> GeneratedArtifact:
        """
        Dispatch to the provider, retrying up to max_attempts.

        Quota errors back off exponentially (base, 2x base, 4x base...) and end in
        QuotaExceeded; other errors wait retry_delay and are re-raised unchanged on the
        last attempt. Provider fallback is not done here.
        """
        for attempt in range(self.max_attempts):
            is_last = attempt == self.max_attempts - 1
            try:
                logger.info(f"Video generation attempt {attempt + 1}/{self.max_attempts}")
                return await self.provider.generate(entry.prompt, entry.negative_prompt, entry.options)
            except Exception as e:
                logger.error(f"Video generation attempt {attempt + 1} failed: {e}")

                if is_quota_error(e):
                    if is_last:
                        raise QuotaExceeded(details={"attempts": self.max_attempts}) from e
                    backoff = self.quota_backoff_base * (2**attempt)
                    logger.info(f"Quota exceeded, backing off for {backoff * 1000:.0f}ms")
                    await self._sleep(backoff)
                    continue

                if is_last:
                    raise
                await self._sleep(self.retry_delay)

        # max_attempts < 1
        raise QuotaExceeded("Video generation was not attempted", details={"attempts": self.max_attempts})

    def get_status(self) -> Dict[str, Any]:
        self.window.prune(self._clock())
        return {
            "state": self.state,
            "depth": self.depth,
            "requestsInWindow": self.window.request_count,
            "maxRequestsPerWindow": self.max_requests_per_window,
        }

    async def close(self) -> None:
        """Stop the drain loop and reject anything still waiting."""
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        while self._entries:
            self._resolve(self._entries.popleft(), error=JewelryStudioError("Video queue shut down"))


_video_queue: Optional[VideoGenerationQueue] = None


def get_video_queue() -> VideoGenerationQueue:
    """Get or create the process-wide video queue."""
    global _video_queue
    if _video_queue is None:
        _video_queue = VideoGenerationQueue(
            provider=VeoProvider(),
            min_request_interval=settings.video_min_request_interval_ms / 1000,
            max_requests_per_window=settings.video_max_requests_per_window,
            window_duration=settings.video_window_ms / 1000,
            queue_timeout=settings.video_queue_timeout_ms / 1000,
            max_attempts=settings.video_max_attempts,
            quota_backoff_base=settings.video_quota_backoff_base_ms / 1000,
            retry_delay=settings.video_retry_delay_ms / 1000,
            cooldown=settings.video_cooldown_ms / 1000,
        )
    return _video_queue
