"""Staging of specification content as private temporary files."""

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from specmatic_orchestrator.models.request import SpecFormat

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class SpecArtifact:
    """A specification written to its own temporary directory."""

    path: Path
    spec_format: SpecFormat
    content: str = field(repr=False)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @classmethod
    def create(
        cls, content: str, spec_format: SpecFormat, *, prefix: str
    ) -> "SpecArtifact":
        """Write content to ``spec.<format>`` inside a fresh temp directory.

        Every call gets a distinct directory, so concurrent invocations never
        see each other's files.
        """
        directory = Path(tempfile.mkdtemp(prefix=prefix))
        path = directory / f"spec.{spec_format}"
        try:
            path.write_text(content, encoding="utf-8")
        except OSError:
            shutil.rmtree(directory, ignore_errors=True)
            raise
        log.debug("Staged %s spec at %s", spec_format, path)
        return cls(path=path, spec_format=spec_format, content=content)

    def remove(self) -> None:
        """Delete the staging directory; failures are logged, not raised."""
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass
        except OSError as exc:
            log.warning("Failed to clean up staged spec %s: %s", self.directory, exc)


@contextmanager
def staged_spec(
    content: str, spec_format: SpecFormat, *, prefix: str = "specmatic-test-"
) -> Iterator[SpecArtifact]:
    """Stage a spec for the duration of the ``with`` block.

    The temporary directory is removed on every exit path, including
    exceptions raised inside the block.
    """
    artifact = SpecArtifact.create(content, spec_format, prefix=prefix)
    try:
        yield artifact
    finally:
        artifact.remove()
