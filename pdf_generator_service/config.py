"""
PDF Generator Service Configuration Module

Centralized configuration management with Pydantic validation.
Settings are resolved once at startup from the environment (and an optional
.env file) so misconfigurations fail fast before the browser is launched.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Default artifact directory lives next to the package, like the original
# service's ./pdfs folder.
DEFAULT_PDF_DIR = Path(__file__).resolve().parent.parent / "pdfs"


class ServiceSettings(BaseSettings):
    """
    PDF generator configuration with validation.

    All settings can be overridden via environment variables.
    """

    # === Server ===
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=3000, ge=1, le=65535, description="Listening port")
    base_url: Optional[str] = Field(
        default=None,
        description="Externally advertised base URL used to build download links"
    )
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # === Storage ===
    pdf_dir: Path = Field(
        default=DEFAULT_PDF_DIR,
        description="Directory holding generated PDFs until they expire"
    )

    # === Chromium ===
    chromium_executable_path: Optional[str] = Field(
        default=None,
        description="Path to a Chromium binary (hardened deployments)"
    )
    headless: bool = Field(default=True, description="Run Chromium headless")

    # === Security ===
    trusted_origin_domain: str = Field(
        default="atap.solar",
        description="Parent domain whose subdomains may call the API cross-origin"
    )

    # === Diagnostics ===
    debug_diagnostics: bool = Field(
        default=False,
        description="Record the last request and its image loads for troubleshooting"
    )

    # === Concurrency ===
    max_concurrent_renders: Optional[int] = Field(
        default=None,
        ge=1,
        le=100,
        description="Reject renders beyond this many in flight (unset = unbounded)"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one the logging module understands."""
        v_upper = v.upper()
        if v_upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v_upper

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Basic URL format validation; trailing slashes are dropped."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL format: {v}")
        return v.rstrip("/")

    @field_validator("trusted_origin_domain")
    @classmethod
    def normalize_trusted_domain(cls, v: str) -> str:
        """Store the domain lowercased and without a leading dot."""
        v = v.strip().lower().lstrip(".")
        if not v:
            raise ValueError("trusted_origin_domain must not be empty")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration is suitable for production.

        Returns list of warning/error messages.
        """
        issues = []

        if self.is_production:
            if self.debug_diagnostics:
                issues.append("CRITICAL: DEBUG_DIAGNOSTICS must be disabled in production")
            if not self.base_url:
                issues.append("WARNING: BASE_URL not configured, download links use the request host")
            if self.max_concurrent_renders is None:
                issues.append("WARNING: MAX_CONCURRENT_RENDERS not set, renders are unbounded")

        return issues

    class Config:
        env_prefix = ""  # No prefix, use exact env var names
        case_sensitive = False  # PDF_DIR = pdf_dir
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> ServiceSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.
    """
    return ServiceSettings()


def validate_config_on_startup() -> ServiceSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs warnings for non-critical issues.
    """
    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}") from e

    for issue in settings.validate_production_config():
        if issue.startswith("CRITICAL"):
            raise ValueError(issue)
        logger.warning(issue)

    logger.info(f"Configuration loaded: environment={settings.environment}")
    logger.info(f"  port={settings.port}")
    logger.info(f"  base_url={settings.base_url or '(from request)'}")
    logger.info(f"  pdf_dir={settings.pdf_dir}")
    logger.info(f"  trusted_origin_domain={settings.trusted_origin_domain}")
    logger.info(f"  debug_diagnostics={settings.debug_diagnostics}")
    logger.info(f"  max_concurrent_renders={settings.max_concurrent_renders or 'unbounded'}")

    return settings
