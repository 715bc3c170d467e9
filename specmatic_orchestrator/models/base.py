"""Base model configuration for caller-supplied request models."""

from pydantic import BaseModel, ConfigDict


class RequestModel(BaseModel):
    """Immutable request model that rejects unknown arguments."""

    model_config = ConfigDict(frozen=True, extra="forbid")
