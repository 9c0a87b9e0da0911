"""Server infrastructure settings."""

from typing import List

from pydantic import Field, field_validator

from infrastructure.configuration.base import InfrastructureSettings


class ServerSettings(InfrastructureSettings):
    """HTTP server and API authentication configuration.

    Environment Variables:
        BACKEND_URL: Backend API base URL (default: http://127.0.0.1:8000)
        SESSION_SECRET_KEY: Secret used to verify bearer JWTs (HS256)
        JWT_ALGORITHM: JWT signing algorithm (default: HS256)
        CORS_ALLOW_ORIGINS: JSON list of allowed origins

    Example:
        ```python
        from infrastructure.services import get_settings

        secret = get_settings().server.SECRET_KEY
        ```
    """

    BACKEND_URL: str = Field(default="http://127.0.0.1:8000", alias="BACKEND_URL")
    SECRET_KEY: str | None = Field(default=None, alias="SESSION_SECRET_KEY")
    JWT_ALGORITHM: str = Field(default="HS256", alias="JWT_ALGORITHM")
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:8000", "http://127.0.0.1:8000"],
        alias="CORS_ALLOW_ORIGINS",
    )

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        """Accept comma separated origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v
