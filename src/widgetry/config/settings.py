"""Application settings loaded from environment variables.

Hey future me - every knob of the registry lives here! Environment variables use
the WIDGETRY_ prefix and "__" for nesting, e.g.:

    WIDGETRY_PLATFORM__VERSION=2.3.0
    WIDGETRY_SECURITY__ALLOWED_DOMAINS='["cdn.jsdelivr.net", "widgets.acme.io"]'
    WIDGETRY_OBSERVABILITY__LOG_JSON_FORMAT=true

The registry NEVER calls get_settings() itself. Whoever builds it (lifecycle.py,
tests) passes a Settings instance in; a registry built without one uses a fresh
Settings() instead of the cached app-wide instance.
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PLATFORM_FEATURES = [
    "drag-drop",
    "data-binding",
    "real-time",
    "notifications",
    "charts",
    "theming",
    "i18n",
    "performance-monitoring",
]

DEFAULT_ALLOWED_DOMAINS = [
    "cdn.jsdelivr.net",
    "unpkg.com",
    "widgets.company.com",
    "localhost",
]

DEFAULT_CSP_DIRECTIVES: dict[str, list[str]] = {
    "default-src": ["'self'"],
    "script-src": [
        "'self'",
        "'unsafe-inline'",
        "'unsafe-eval'",
        "https://cdn.jsdelivr.net",
        "https://unpkg.com",
    ],
    "style-src": ["'self'", "'unsafe-inline'", "https://fonts.googleapis.com"],
    "img-src": ["'self'", "data:", "https:"],
    "connect-src": ["'self'", "https:", "wss:"],
    "font-src": ["'self'", "https://fonts.gstatic.com"],
}


class PlatformSettings(BaseModel):
    """Host platform description consumed by the compatibility checker."""

    version: str = Field(default="1.0.0", description="Current platform version")
    features: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PLATFORM_FEATURES),
        description="Capability flags this platform provides",
    )


class SecuritySettings(BaseModel):
    """Allow-list and CSP, fixed for the registry's lifetime."""

    allowed_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_DOMAINS),
        description="Hostnames (exact or parent domain) widgets may be fetched from",
    )
    content_security_policy: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CSP_DIRECTIVES.items()},
        description="CSP directive -> allowed sources",
    )

    # Hostnames are case-insensitive; normalize once here so the enforcer can compare directly.
    @field_validator("allowed_domains")
    @classmethod
    def _normalize_domains(cls, value: list[str]) -> list[str]:
        return [domain.strip().lower().rstrip(".") for domain in value if domain.strip()]


class HttpSettings(BaseModel):
    """Shared HTTP client pool configuration."""

    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    max_connections: int = Field(default=50, ge=1)
    max_keepalive: int = Field(default=20, ge=0)


class ObservabilitySettings(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")
    log_json_format: bool = Field(default=False)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="WIDGETRY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "widgetry"
    host: str = Field(default="127.0.0.1", description="API bind address (widgetry.main:run)")
    port: int = Field(default=8000, ge=1, le=65535, description="API port")
    platform: PlatformSettings = Field(default_factory=PlatformSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def log_level(self) -> str:
        """Shortcut used by configure_logging callers."""
        return self.observability.log_level


# Hey future me - lru_cache makes this a lazy singleton for the APP entry points only
# (lifespan, CLI). Tests construct Settings(...) directly. Call get_settings.cache_clear()
# if you change env vars at runtime.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
