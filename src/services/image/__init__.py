"""Store logo services package."""

from src.services.image.cloudinary_service import (
    CloudinaryLogoService,
    InvalidLogoError,
    LogoError,
    LogoUploadError,
    logo_public_id,
)

__all__ = [
    "CloudinaryLogoService",
    "InvalidLogoError",
    "LogoError",
    "LogoUploadError",
    "logo_public_id",
]
