"""
Store Logo Service using Cloudinary

DESIGN DECISION: Store logos live in Cloudinary because:
1. Invoices embed the logo by URL, which Cloudinary serves over a CDN
2. Uploads are a single SDK call
3. Free tier is more than enough for one logo per account

This service handles:
1. Checking the uploaded bytes are a real image of an accepted format
2. Upload to Cloudinary under a per-account public id
3. Returning the secure URL that goes into the store settings

CRITICAL: We never upload bytes Pillow cannot open. A logo that can't be
decoded would break every invoice rendered afterwards.
"""

import re
import time
from io import BytesIO
from pathlib import PurePath
from typing import Any, Callable, Optional

import cloudinary
import cloudinary.uploader
import structlog
from cloudinary.exceptions import Error as CloudinaryError
from PIL import Image, UnidentifiedImageError

from src.config import AppSettings, CloudinarySettings, get_settings

logger = structlog.get_logger(__name__)

MIN_LOGO_DIMENSION = 16


class LogoError(Exception):
    """Base exception for logo handling errors."""
    pass


class InvalidLogoError(LogoError):
    """The uploaded file is not an acceptable image."""
    pass


class LogoUploadError(LogoError):
    """Failed to upload the logo to Cloudinary."""
    pass


def logo_public_id(account_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Public id for a logo upload.

    Format: logos/{account_id}_{timestamp_ms}_{filename stem}
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    stem = re.sub(r"[^\w\-]+", "_", PurePath(filename).stem).strip("_") or "logo"
    return f"logos/{account_id}_{timestamp_ms}_{stem}"


class CloudinaryLogoService:
    """
    Service for uploading store logos to Cloudinary.

    Flow:
    1. Receive raw image bytes
    2. Check size, format and dimensions with Pillow
    3. Upload to Cloudinary
    4. Return the secure URL
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        app_settings: Optional[AppSettings] = None,
        uploader: Optional[Callable[..., dict[str, Any]]] = None,
    ):
        self._settings = settings
        self._app_settings = app_settings or get_settings().app
        self._uploader = uploader or cloudinary.uploader.upload
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            if self._settings is None:
                self._settings = get_settings().cloudinary
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def validate_logo(self, image_bytes: bytes) -> str:
        """
        Check that the bytes are an acceptable logo image.

        Returns:
            The detected format, lowercase (e.g. 'png')

        Raises:
            InvalidLogoError: With a message that can be shown to the user
        """
        if not image_bytes:
            raise InvalidLogoError("The logo file is empty")

        max_bytes = self._app_settings.max_logo_size_bytes
        if len(image_bytes) > max_bytes:
            raise InvalidLogoError(
                f"Logo is too large ({len(image_bytes) / (1024 * 1024):.1f} MB); "
                f"the limit is {self._app_settings.max_logo_size_mb} MB"
            )

        try:
            with Image.open(BytesIO(image_bytes)) as img:
                image_format = (img.format or "").lower()
                width, height = img.size
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise InvalidLogoError(f"The file is not a readable image: {e}")

        supported = self._app_settings.supported_logo_formats_list
        if image_format not in supported:
            raise InvalidLogoError(
                f"Unsupported logo format '{image_format}'. "
                f"Use one of: {', '.join(supported)}"
            )

        if min(width, height) < MIN_LOGO_DIMENSION:
            raise InvalidLogoError(
                f"Logo is too small ({width}x{height}px); "
                f"use at least {MIN_LOGO_DIMENSION}px on each side"
            )

        return image_format

    async def upload_logo(
        self,
        account_id: str,
        image_bytes: bytes,
        filename: str,
    ) -> str:
        """
        Validate and upload a store logo.

        Not retried: a failed upload is reported and the user picks the
        file again.

        Returns:
            The secure URL of the uploaded logo

        Raises:
            InvalidLogoError: If the file is not an acceptable image
            LogoUploadError: If Cloudinary rejects the upload
        """
        image_format = self.validate_logo(image_bytes)
        self._configure()

        public_id = logo_public_id(account_id, filename)
        try:
            result = self._uploader(
                image_bytes,
                public_id=public_id,
                folder=self._settings.logo_folder,
                resource_type="image",
                overwrite=True,
            )
        except CloudinaryError as e:
            raise LogoUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise LogoUploadError(f"Failed to upload logo: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise LogoUploadError("No URL returned from Cloudinary")

        logger.info(
            "logo_uploaded",
            account_id=account_id,
            public_id=public_id,
            format=image_format,
            size=len(image_bytes),
        )
        return url
