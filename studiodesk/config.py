"""studiodesk configuration management.

Loads configuration from environment variables with sensible defaults.
Follows the studio's billing conventions (INR currency, GST applied to
tax invoices only).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class GatewayConfig:
    """Hosted data platform connection configuration."""

    url: str
    anon_key: str
    access_token: str | None = None  # Falls back to anon key when unset
    timeout: float = 30.0

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.url.rstrip('/')}/storage/v1"

    @property
    def functions_url(self) -> str:
        return f"{self.url.rstrip('/')}/functions/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.url.rstrip('/')}/auth/v1"


@dataclass
class StorageConfig:
    """Photo-bank object storage settings."""

    bucket: str = "images"
    image_table: str = "image_obj_storage_table"
    upload_function: str = "upload-image"
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB


@dataclass
class InvoiceConfig:
    """Invoice defaults."""

    currency_symbol: str = "₹"
    default_gst_rate: str = "18"
    default_payment_method: str = "bank"
    invoice_table: str = "invoice_items_table"
    owner_table: str = "photography_owner_table"


@dataclass
class BoardConfig:
    """Project board behaviour."""

    project_table: str = "projects"
    reconcile_after_mutation: bool = False  # Refetch after each successful move


@dataclass
class AuthConfig:
    """Authentication settings.

    The bypass identity is for local development only. It is turned into an
    explicit identity provider by ``studiodesk.auth.build_identity_provider``
    and injected into services; nothing reads it globally.
    """

    bypass_enabled: bool = False
    bypass_user_id: str = "00000000-0000-0000-0000-000000000000"
    bypass_email: str = "dev@studiodesk.local"
    bypass_role: str = "manager"


@dataclass
class AppConfig:
    """Root application configuration.

    Loads from environment variables with fail-fast on missing required values.
    """

    gateway: GatewayConfig
    log_level: str = "INFO"
    log_format: str = "text"  # json or text

    storage: StorageConfig = field(default_factory=StorageConfig)
    invoices: InvoiceConfig = field(default_factory=InvoiceConfig)
    board: BoardConfig = field(default_factory=BoardConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables.

        Required environment variables:
        - SUPABASE_URL: Base URL of the hosted project
        - SUPABASE_ANON_KEY: Public API key sent with every request

        Optional (with defaults):
        - SUPABASE_ACCESS_TOKEN: Session token for an authenticated user
        - LOG_LEVEL: Logging verbosity (default: "INFO")
        - DEV_BYPASS_AUTH: Use a fixed development identity (default: false)

        Raises:
            KeyError: If required environment variables are missing
        """
        url = os.environ.get("SUPABASE_URL")
        if not url:
            raise KeyError(
                "SUPABASE_URL environment variable is required. "
                "Example: https://abcd1234.supabase.co"
            )

        anon_key = os.environ.get("SUPABASE_ANON_KEY")
        if not anon_key:
            raise KeyError("SUPABASE_ANON_KEY environment variable is required.")

        environment = os.getenv("ENVIRONMENT", "development")
        bypass_enabled = os.getenv("DEV_BYPASS_AUTH", "false").lower() == "true"
        if bypass_enabled and environment == "production":
            raise KeyError("DEV_BYPASS_AUTH must not be enabled in production.")

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            gateway=GatewayConfig(
                url=url,
                anon_key=anon_key,
                access_token=os.getenv("SUPABASE_ACCESS_TOKEN"),
                timeout=float(os.getenv("GATEWAY_TIMEOUT", "30")),
            ),
            storage=StorageConfig(
                bucket=os.getenv("IMAGE_BUCKET", "images"),
                image_table=os.getenv("IMAGE_TABLE", "image_obj_storage_table"),
                upload_function=os.getenv("IMAGE_UPLOAD_FUNCTION", "upload-image"),
                max_upload_bytes=int(
                    os.getenv("IMAGE_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))
                ),
            ),
            invoices=InvoiceConfig(
                currency_symbol=os.getenv("CURRENCY_SYMBOL", "₹"),
                default_gst_rate=os.getenv("DEFAULT_GST_RATE", "18"),
                default_payment_method=os.getenv("DEFAULT_PAYMENT_METHOD", "bank"),
            ),
            board=BoardConfig(
                project_table=os.getenv("PROJECT_TABLE", "projects"),
                reconcile_after_mutation=os.getenv(
                    "RECONCILE_AFTER_MUTATION", "false"
                ).lower()
                == "true",
            ),
            auth=AuthConfig(
                bypass_enabled=bypass_enabled,
                bypass_user_id=os.getenv(
                    "DEV_BYPASS_USER_ID", "00000000-0000-0000-0000-000000000000"
                ),
                bypass_email=os.getenv("DEV_BYPASS_EMAIL", "dev@studiodesk.local"),
                bypass_role=os.getenv("DEV_BYPASS_ROLE", "manager"),
            ),
        )


# Singleton instance (lazy-loaded), used by the CLI entry points only
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create singleton AppConfig instance from environment.

    Returns:
        AppConfig: Application configuration

    Raises:
        KeyError: If required environment variables are missing
    """
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config
