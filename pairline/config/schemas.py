"""
Configuration Schemas for Pairline.

Security:
    The bridge secret uses SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr, field_validator


class AppSettings(BaseModel):
    """
    Application settings model.

    Used for type-safe settings access. Populated from the environment by
    `pairline.app.dependencies.get_settings()`.
    """

    # Service identity
    service_name: str = "pairline"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # HTTP listener
    host: str = Field(default="localhost", description="Bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="Listening port")

    # WhatsApp bridge
    bridge_url: str = Field(default="http://localhost:3001", description="Automation bridge URL")
    bridge_secret: SecretStr = Field(default=SecretStr(""), description="Bridge bearer token")
    bridge_timeout: float = Field(default=30.0, gt=0, description="Bridge call timeout (s)")
    client_id: str = Field(default="inventory-wa", description="Session name on the bridge")
    session_dir: str = Field(
        default=".wwebjs_auth/session-inventory-wa",
        description="Linked-device credential storage, wiped on failure and reset",
    )

    # Addressing
    country_code: str = Field(default="94", description="Country code of the numbering plan")

    # Session recovery
    reinit_delay: float = Field(default=2.0, ge=0, description="Delay before re-init after failure (s)")
    reset_delay: float = Field(default=1.0, ge=0, description="Delay before re-init after reset (s)")
    max_reinit_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Consecutive failed re-inits before giving up (None = unbounded)",
    )

    # Dispatch
    send_timeout: float | None = Field(default=60.0, description="Transport send timeout (s)")

    # Uploads
    upload_dir: str = Field(default="uploads", description="Transient upload storage")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0, description="Upload size limit")

    @field_validator("country_code")
    @classmethod
    def _digits_only(cls, value: str) -> str:
        if not value.isdigit():
            raise ValueError("country_code must contain digits only")
        return value

    @field_validator("send_timeout")
    @classmethod
    def _zero_disables_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            return None
        return value
