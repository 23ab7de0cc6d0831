"""Portal configuration."""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


class PortalConfig(BaseModel):
    """Runtime configuration for the kernel and its HTTP surface."""

    store_backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = ":memory:"

    text_generation_timeout_seconds: float = Field(gt=0, default=3.0)
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_endpoint: str = "https://generativelanguage.googleapis.com/v1beta"

    brand_name: str = "Waste Up Ibadan"
    notification_mode: Literal["inline", "background"] = "background"
    notification_workers: int = Field(ge=1, default=2)

    # Outgoing mail; without smtp_host emails are only logged
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_sender: str = "Waste Up Ibadan <no-reply@wasteup.ng>"

    log_level: str = "INFO"
    seed_demo_data: bool = False

    @classmethod
    def from_env(cls) -> "PortalConfig":
        """Build a config from WASTEUP_* environment variables."""
        defaults = cls()
        return cls(
            store_backend=os.getenv("WASTEUP_STORE_BACKEND", defaults.store_backend),
            db_path=os.getenv("WASTEUP_DB_PATH", defaults.db_path),
            text_generation_timeout_seconds=float(os.getenv(
                "WASTEUP_TEXTGEN_TIMEOUT", defaults.text_generation_timeout_seconds
            )),
            gemini_api_key=os.getenv("WASTEUP_GEMINI_API_KEY") or None,
            gemini_model=os.getenv("WASTEUP_GEMINI_MODEL", defaults.gemini_model),
            gemini_endpoint=os.getenv("WASTEUP_GEMINI_ENDPOINT", defaults.gemini_endpoint),
            brand_name=os.getenv("WASTEUP_BRAND_NAME", defaults.brand_name),
            notification_mode=os.getenv(
                "WASTEUP_NOTIFICATION_MODE", defaults.notification_mode
            ),
            notification_workers=int(os.getenv(
                "WASTEUP_NOTIFICATION_WORKERS", defaults.notification_workers
            )),
            smtp_host=os.getenv("WASTEUP_SMTP_HOST") or None,
            smtp_port=int(os.getenv("WASTEUP_SMTP_PORT", defaults.smtp_port)),
            smtp_username=os.getenv("WASTEUP_SMTP_USERNAME") or None,
            smtp_password=os.getenv("WASTEUP_SMTP_PASSWORD") or None,
            smtp_use_tls=os.getenv("WASTEUP_SMTP_USE_TLS", "true").lower()
            in ("1", "true", "yes"),
            mail_sender=os.getenv("WASTEUP_MAIL_SENDER", defaults.mail_sender),
            log_level=os.getenv("WASTEUP_LOG_LEVEL", defaults.log_level),
            seed_demo_data=os.getenv("WASTEUP_SEED_DEMO_DATA", "").lower()
            in ("1", "true", "yes"),
        )


class RuntimeConfigUpdate(BaseModel):
    """Fields that may be changed on a running portal."""

    text_generation_timeout_seconds: Optional[float] = Field(gt=0, default=None)
    brand_name: Optional[str] = None
    log_level: Optional[str] = None
