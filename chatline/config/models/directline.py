"""Remote endpoint configuration models."""

from pydantic import BaseModel, Field, SecretStr


class DirectLineConfig(BaseModel):
    """Configuration for the Direct Line endpoint and its HTTP client."""

    endpoint: str = Field(
        default="https://directline.botframework.com/v3/directline",
        description="Base URL of the Direct Line API",
    )
    secret: SecretStr | None = Field(
        default=None,
        description="Direct Line secret (prefer env var)",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries for network errors, 429 and 5xx responses",
    )
    retry_backoff: float = Field(
        default=0.1,
        ge=0,
        description="Base delay in seconds for exponential back-off",
    )
