"""Connection configuration models."""

from pydantic import BaseModel, SecretStr, field_validator


class IMAPConfig(BaseModel):
    """IMAP server configuration."""

    host: str
    port: int = 993
    username: str
    password: SecretStr
    ssl: bool = False
    timeout: float | None = None  # seconds; None blocks indefinitely

    @field_validator("port")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("timeout")
    @classmethod
    def _validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive")
        return v
