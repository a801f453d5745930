"""
Tests for reference upload validation and normalization.
"""
import io

import pytest
from conftest import make_image_bytes
from PIL import Image

from core.config import settings
from core.exceptions import InputError
from services.reference_image import build_reference_context, normalize_reference_image, validate_upload


class TestNormalizeReferenceImage:
    def test_large_image_shrunk_to_max_dimension(self):
        data = make_image_bytes(size=(2400, 1200), fmt="PNG", mode="RGBA", color=(200, 170, 60, 128))

        normalized = Image.open(io.BytesIO(normalize_reference_image(data, max_dimension=1024)))

        assert normalized.format == "JPEG"
        assert normalized.mode == "RGB"
        assert normalized.size == (1024, 512)

    def test_small_image_not_enlarged(self):
        normalized = Image.open(io.BytesIO(normalize_reference_image(make_image_bytes(size=(300, 200)))))
        assert normalized.size == (300, 200)

    def test_undecodable_bytes_rejected(self):
        with pytest.raises(InputError):
            normalize_reference_image(b"definitely not an image")

    def test_decompression_bomb_rejected_as_input_error(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        data = make_image_bytes(size=(200, 200), fmt="PNG")

        with pytest.raises(InputError) as exc_info:
            build_reference_context(data, "image/png")

        assert exc_info.value.status_code == 400


class TestValidateUpload:
    def test_non_image_content_type_rejected(self):
        with pytest.raises(InputError):
            validate_upload(b"%PDF-1.4", "application/pdf")

    def test_empty_upload_rejected(self):
        with pytest.raises(InputError):
            validate_upload(b"", "image/png")

    def test_oversized_upload_rejected(self, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_size", 10)
        with pytest.raises(InputError) as exc_info:
            validate_upload(b"x" * 11, "image/jpeg")
        assert exc_info.value.details["maxSize"] == 10


def test_build_reference_context(jpeg_bytes):
    context = build_reference_context(jpeg_bytes, "image/jpeg")

    assert context.raw_bytes == jpeg_bytes
    assert context.mime_type == "image/jpeg"
    assert context.data_url.startswith("data:image/jpeg;base64,")
    assert context.to_response() == {"publicUrl": None, "filename": None, "analysis": ""}
