"""
Pytest configuration and fixtures for Jewelry Studio API tests.
"""
import asyncio
import io
from typing import List

import pytest
from PIL import Image

from services.artifact_store import LocalArtifactStore
from services.generation_providers import GeneratedArtifact


class FakeClock:
    """Virtual monotonic clock; sleep() advances it instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0)
        await asyncio.sleep(0)


def make_image_bytes(size=(100, 100), color="gold", fmt="JPEG", mode="RGB") -> bytes:
    img = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_artifact(kind: str = "image", provider: str = "imagen", data: bytes = b"fake-png-bytes") -> GeneratedArtifact:
    if kind == "video":
        return GeneratedArtifact(
            kind="video",
            data=data,
            mime_type="video/mp4",
            filename="jewelry-video-veo-1718000000000-abcd1234.mp4",
            provider=provider,
            model="veo-3.0-fast-generate-001",
        )
    return GeneratedArtifact(
        kind="image",
        data=data,
        mime_type="image/png",
        filename="jewelry-catalog-1718000000000-abcd1234.png",
        provider=provider,
        model="imagen-3.0-generate-002",
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def jpeg_bytes():
    """Small gold JPEG used as a reference upload."""
    return make_image_bytes()


@pytest.fixture
def local_store(tmp_path):
    return LocalArtifactStore(root=str(tmp_path / "artifacts"), public_base_url="http://testserver/static/artifacts")
