"""Models for requests accepted by the orchestrator."""

from pathlib import Path
from typing import Literal, Self
from urllib.parse import urlparse

from pydantic import Field, field_validator, model_validator

from specmatic_orchestrator.models.base import RequestModel

type SpecFormat = Literal["yaml", "json"]
type MockCommand = Literal["start", "stop", "list"]

DEFAULT_MOCK_PORT = 9000


class TestRunRequest(RequestModel):
    """Request to run contract or resiliency tests against a live API."""

    __test__ = False

    spec_content: str = Field(
        ..., min_length=1, description="OpenAPI specification (YAML or JSON)"
    )
    base_url: str = Field(..., description="Base URL of the API under test")
    spec_format: SpecFormat = Field(default="yaml", description="Format of the spec")
    boundary_mode: bool = Field(
        default=False, description="Generate contract-invalid requests as well"
    )

    @field_validator("spec_content")
    @classmethod
    def _require_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("spec_content must not be blank")
        return value

    @field_validator("base_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"base_url must be an http(s) URL, got {value!r}")
        return value


class MockServerRequest(RequestModel):
    """Request to start, stop or list mock servers."""

    command: MockCommand
    spec_content: str | None = Field(
        default=None, description="OpenAPI specification, required for start"
    )
    spec_format: SpecFormat = "yaml"
    port: int = Field(default=DEFAULT_MOCK_PORT, ge=1, le=65535)

    @model_validator(mode="after")
    def _require_spec_for_start(self) -> Self:
        if self.command == "start" and not (self.spec_content or "").strip():
            raise ValueError("spec_content is required for the 'start' command")
        return self


class CompatibilityRequest(RequestModel):
    """Request to check a specification for backward-incompatible changes."""

    target_path: str | None = Field(
        default=None, description="File or folder to analyze (default: all specs)"
    )
    base_branch: str | None = Field(
        default=None, description="Branch to compare against (default: HEAD)"
    )
    repo_dir: Path | None = Field(
        default=None, description="Repository directory (default: current dir)"
    )

    @field_validator("repo_dir")
    @classmethod
    def _require_existing_dir(cls, value: Path | None) -> Path | None:
        if value is not None and not value.is_dir():
            raise ValueError(f"repo_dir {str(value)!r} is not a directory")
        return value
