"""Tests for logo validation and upload."""

from io import BytesIO

import pytest
from cloudinary.exceptions import Error as CloudinaryError
from PIL import Image

from src.config import AppSettings, CloudinarySettings
from src.services.image import CloudinaryLogoService, InvalidLogoError, LogoUploadError
from src.services.image.cloudinary_service import logo_public_id


def image_bytes(size=(64, 64), fmt="PNG"):
    buffer = BytesIO()
    Image.new("RGB", size, "white").save(buffer, format=fmt)
    return buffer.getvalue()


class FakeUploader:

    def __init__(self, result=None, error=None):
        self.result = result or {"secure_url": "https://res.cloudinary.com/demo/logo.png"}
        self.error = error
        self.calls = []

    def __call__(self, data, **options):
        self.calls.append(options)
        if self.error:
            raise self.error
        return self.result


def make_service(uploader):
    return CloudinaryLogoService(
        settings=CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret"),
        app_settings=AppSettings(),
        uploader=uploader,
    )


class TestValidation:

    def test_accepts_png(self):
        assert make_service(FakeUploader()).validate_logo(image_bytes()) == "png"

    @pytest.mark.parametrize("data", [b"", b"definitely not an image"])
    def test_rejects_unreadable(self, data):
        with pytest.raises(InvalidLogoError):
            make_service(FakeUploader()).validate_logo(data)

    def test_rejects_unsupported_format(self):
        with pytest.raises(InvalidLogoError, match="Unsupported"):
            make_service(FakeUploader()).validate_logo(image_bytes(fmt="GIF"))

    def test_rejects_tiny_image(self):
        with pytest.raises(InvalidLogoError, match="too small"):
            make_service(FakeUploader()).validate_logo(image_bytes(size=(8, 64)))

    def test_rejects_oversized_file(self):
        service = CloudinaryLogoService(
            settings=CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret"),
            app_settings=AppSettings(max_logo_size_mb=1),
            uploader=FakeUploader(),
        )

        with pytest.raises(InvalidLogoError, match="too large"):
            service.validate_logo(b"\x89PNG" + b"\x00" * (1024 * 1024 + 1))


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_returns_secure_url(self):
        uploader = FakeUploader()

        url = await make_service(uploader).upload_logo("uid-1", image_bytes(), "My Logo.png")

        assert url == "https://res.cloudinary.com/demo/logo.png"
        options = uploader.calls[0]
        assert options["public_id"].startswith("logos/uid-1_")
        assert options["public_id"].endswith("_My_Logo")
        assert options["overwrite"] is True

    @pytest.mark.asyncio
    async def test_invalid_file_is_never_uploaded(self):
        uploader = FakeUploader()

        with pytest.raises(InvalidLogoError):
            await make_service(uploader).upload_logo("uid-1", b"nope", "logo.png")

        assert uploader.calls == []

    @pytest.mark.asyncio
    async def test_provider_error_is_wrapped(self):
        uploader = FakeUploader(error=CloudinaryError("Invalid signature"))

        with pytest.raises(LogoUploadError, match="Cloudinary error"):
            await make_service(uploader).upload_logo("uid-1", image_bytes(), "logo.png")

    @pytest.mark.asyncio
    async def test_missing_url_is_an_error(self):
        uploader = FakeUploader(result={"public_id": "x"})

        with pytest.raises(LogoUploadError):
            await make_service(uploader).upload_logo("uid-1", image_bytes(), "logo.png")


def test_public_id_sanitizes_filename():
    assert logo_public_id("uid", "My Logo (1).png", timestamp_ms=1) == "logos/uid_1_My_Logo_1"
    assert logo_public_id("uid", "???.jpg", timestamp_ms=2) == "logos/uid_2_logo"
