"""
Configuration Management for Amar Hisab

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Firestore document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Google Cloud project that owns the Firestore database"
    )
    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )

    # Root collection under which every account's data lives
    users_collection: str = Field(
        default="users",
        description="Top-level collection holding one document per account"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class CloudinarySettings(BaseSettings):
    """Cloudinary blob storage configuration (store logos)."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    logo_folder: str = Field(
        default="amar_hisab",
        description="Folder that logo uploads are placed in"
    )


class FirebaseAuthSettings(BaseSettings):
    """Identity provider (Firebase Authentication REST API) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_AUTH_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Web API key of the Firebase project"
    )
    base_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Identity Toolkit REST endpoint"
    )
    timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="HTTP timeout for sign-in and sign-up calls"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Ledger policy
    stock_policy: str = Field(
        default="clamp",
        pattern="^(clamp|reject)$",
        description=(
            "What to do when a sale asks for more units than are in stock: "
            "'clamp' floors stock at zero, 'reject' fails validation"
        )
    )
    max_transaction_amount: float = Field(
        default=10000000.0,
        description="Sale totals above this get a sanity warning"
    )

    # Reporting
    report_timezone: str = Field(
        default="Asia/Dhaka",
        description="Timezone used to bucket transactions into days and months"
    )
    low_stock_threshold: int = Field(
        default=5,
        ge=0,
        description="Products below this quantity are listed as low stock on the dashboard"
    )
    stock_status_threshold: int = Field(
        default=10,
        ge=1,
        description="Products at or above this quantity count as 'in stock'"
    )
    currency_symbol: str = Field(
        default="Tk",
        description="Currency label printed on invoices"
    )

    # Logo uploads
    max_logo_size_mb: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum logo upload size in MB"
    )
    supported_logo_formats: str = Field(
        default="png,jpeg,webp",
        description="Comma-separated list of accepted logo image formats"
    )

    # Documents
    pdf_font_path: Optional[str] = Field(
        default=None,
        description="TTF font used for invoices (needed for Bengali text)"
    )

    @property
    def supported_logo_formats_list(self) -> list[str]:
        """Get supported logo formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_logo_formats.split(",")]

    @property
    def max_logo_size_bytes(self) -> int:
        """Get max logo size in bytes."""
        return self.max_logo_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: Sub-settings are loaded lazily so that a test or offline run
    # doesn't need credentials for services it never touches

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def firebase_auth(self) -> FirebaseAuthSettings:
        return FirebaseAuthSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("firestore", "cloudinary", "firebase_auth", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
