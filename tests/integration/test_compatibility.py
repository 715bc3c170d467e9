"""Backward compatibility checks against the fake engine."""

from pathlib import Path

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.orchestrator import SpecmaticOrchestrator


async def test_compatible_spec(
    orchestrator: SpecmaticOrchestrator, tmp_path: Path
) -> None:
    """A clean check is backward compatible."""
    report = await orchestrator.check_compatibility(
        target_path="api/pets.yaml", repo_dir=tmp_path
    )

    assert report.compatible
    assert report.status == "success"
    assert report.infos == 1
    assert report.breaking_changes == 0


async def test_breaking_spec(orchestrator: SpecmaticOrchestrator) -> None:
    """Breaking changes make the spec incompatible."""
    report = await orchestrator.check_compatibility(
        target_path="api/breaking.yaml", base_branch="main"
    )

    assert not report.compatible
    assert report.status == "failure"
    assert report.exit_code == 1
    assert report.breaking_changes == 1
    assert report.warnings == 1
    assert report.total_checks >= 2


async def test_disabled_check(engine_config: EngineConfig) -> None:
    """Deployments without a git tree report the check as unavailable."""
    config = engine_config.model_copy(update={"compatibility_check_enabled": False})

    async with SpecmaticOrchestrator.from_config(config) as orchestrator:
        report = await orchestrator.check_compatibility()

    assert report.status == "error"
    assert report.error_kind == "unavailable"
