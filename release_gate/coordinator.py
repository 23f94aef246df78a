"""
Publish Coordinator

Runs the release pipeline as a strict state machine:

    INIT -> GATED -> PUBLISHED -> ANNOUNCED -> DONE

with terminal SKIPPED (gate closed, not an error) and FAILED (reachable from
any non-terminal state). No stage runs unless its predecessor fully
succeeded, and nothing already applied to the registry is undone.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from release_gate.credentials import Credentials
from release_gate.errors import (
    ConfigurationError,
    InconsistentStateError,
    ReleaseGateError,
)
from release_gate.manifest import Manifest, read_manifest
from release_gate.packager import AbstractPackager, artifact_identity
from release_gate.registry import AbstractRegistry, RegistryPublisher
from release_gate.release_host import ReleaseAnnouncer, validate_repo_identity
from release_gate.version_gate import VersionGate

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    INIT = "init"
    GATED = "gated"
    PUBLISHED = "published"
    ANNOUNCED = "announced"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.DONE, PipelineState.SKIPPED, PipelineState.FAILED)


@dataclass
class PipelineReport:
    """Outcome of one pipeline run."""
    package: str = ""
    source_version: str = ""
    registry_version: Optional[str] = None
    state: str = PipelineState.INIT.value
    timestamp: str = ""
    check_only: bool = False

    decision_reason: str = ""
    failed_stage: Optional[str] = None
    error_type: Optional[str] = None
    registry_touched: bool = False

    artifact: Optional[str] = None
    artifact_sha256: Optional[str] = None
    release_url: Optional[str] = None

    transitions: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    duration_seconds: float = 0.0
    exit_code: int = 0
    summary: str = ""


class PublishCoordinator:
    """
    Sequences VersionGate, RegistryPublisher, ArtifactPackager and
    ReleaseAnnouncer, and owns the stop-on-failure policy.

    Credentials are scoped per stage: the registry token only reaches the
    registry publisher, the release-host token only reaches the announcer.
    """

    def __init__(
        self,
        registry: AbstractRegistry,
        packager: AbstractPackager,
        announcer: ReleaseAnnouncer,
        repo_identity: Optional[str],
        registry_credentials: Credentials,
        release_credentials: Credentials,
        gate: Optional[VersionGate] = None,
        manifest_reader: Callable[[Path], Manifest] = read_manifest,
    ):
        self.registry = registry
        self.publisher = RegistryPublisher(registry)
        self.packager = packager
        self.announcer = announcer
        self.repo_identity = repo_identity
        self.registry_credentials = registry_credentials
        self.release_credentials = release_credentials
        self.gate = gate or VersionGate()
        self.manifest_reader = manifest_reader
        self._state = PipelineState.INIT

    @property
    def state(self) -> PipelineState:
        return self._state

    def _transition(self, report: PipelineReport, new_state: PipelineState) -> None:
        if self._state in TERMINAL_STATES:
            raise RuntimeError(f"Pipeline already terminal ({self._state.value})")
        report.transitions.append(f"{self._state.value} -> {new_state.value}")
        logger.debug(f"State: {self._state.value} -> {new_state.value}")
        self._state = new_state
        report.state = new_state.value

    def run(self, checkout: Path, check_only: bool = False) -> PipelineReport:
        """
        Run the pipeline once against ``checkout``.

        Args:
            checkout: Directory containing the package manifest
            check_only: Stop after the gate without touching anything

        Returns:
            PipelineReport; never raises for pipeline failures
        """
        start_time = datetime.now(timezone.utc)
        self._state = PipelineState.INIT
        report = PipelineReport(timestamp=start_time.isoformat(), check_only=check_only)
        stage = "gate"

        try:
            # Step 1: Gate
            logger.info("Step 1: Checking version gate")
            manifest = self.manifest_reader(Path(checkout))
            report.package = manifest.name
            report.source_version = str(manifest.version)

            registry_version = self.registry.lookup_latest_version(manifest.name)
            report.registry_version = str(registry_version) if registry_version else None

            decision = self.gate.decide(manifest.version, registry_version)
            report.decision_reason = decision.reason

            if not decision.publish:
                self._transition(report, PipelineState.SKIPPED)
                report.exit_code = 0
                report.summary = f"Skipped: {decision.reason}"
                logger.info(f"✓ {report.summary}")
                return report

            self._transition(report, PipelineState.GATED)
            logger.info("✓ Gate open")

            if check_only:
                report.exit_code = 0
                report.summary = f"Check only: {manifest.name} {manifest.version} would be published"
                logger.info(f"✓ {report.summary}")
                return report

            self._preflight(manifest)

            # Step 2: Registry publish (irreversible)
            stage = "publish"
            logger.info(f"Step 2: Publishing {manifest.name} {manifest.version} to {self.registry.location}")
            self.publisher.publish(Path(checkout), self.registry_credentials)
            report.registry_touched = True
            self._transition(report, PipelineState.PUBLISHED)

            # Step 3: Package and announce
            try:
                stage = "package"
                logger.info("Step 3: Packaging artifact")
                artifact = self.packager.package(Path(checkout), manifest)
                if artifact.identity != artifact_identity(manifest.name, manifest.version):
                    raise ConfigurationError(
                        f"Artifact identity {artifact.identity} does not match manifest "
                        f"{artifact_identity(manifest.name, manifest.version)}"
                    )
                report.artifact = str(artifact.path)
                report.artifact_sha256 = artifact.sha256 or None

                stage = "announce"
                logger.info(f"Step 4: Announcing release on {self.repo_identity}")
                record = self.announcer.announce(
                    artifact, manifest.version, self.repo_identity, self.release_credentials
                )
                report.release_url = record.html_url or None
            except ReleaseGateError as e:
                raise InconsistentStateError(
                    f"{manifest.name} {manifest.version} was published to the registry but "
                    f"the {stage} stage failed: {e}. Create the release manually.",
                    stage=stage,
                    cause=e,
                )

            self._transition(report, PipelineState.ANNOUNCED)
            self._transition(report, PipelineState.DONE)

            end_time = datetime.now(timezone.utc)
            report.duration_seconds = (end_time - start_time).total_seconds()
            report.exit_code = 0
            report.summary = f"Released {manifest.name} {manifest.version}"
            logger.info(f"✓ {report.summary} ({report.duration_seconds:.2f}s)")
            return report

        except InconsistentStateError as e:
            self._fail(report, e, e.stage)
            return report

        except ReleaseGateError as e:
            self._fail(report, e, stage)
            return report

        except Exception as e:
            logger.error(f"✗ Unexpected error in {stage} stage: {e}", exc_info=True)
            if report.registry_touched:
                error = InconsistentStateError(
                    f"{report.package} {report.source_version} was published to the registry but "
                    f"the {stage} stage failed unexpectedly: {e}. Create the release manually.",
                    stage=stage,
                )
            else:
                error = ReleaseGateError(f"Unexpected error: {e}")
            self._fail(report, error, stage)
            return report

        finally:
            if not report.duration_seconds:
                report.duration_seconds = (datetime.now(timezone.utc) - start_time).total_seconds()

    def _preflight(self, manifest: Manifest) -> None:
        """Check everything the side-effect stages need before the first one runs."""
        validate_repo_identity(self.repo_identity)
        self.announcer.render_title(manifest.name, manifest.version)
        self.registry_credentials.require()
        self.release_credentials.require()

    def _fail(self, report: PipelineReport, error: ReleaseGateError, stage: str) -> None:
        self._transition(report, PipelineState.FAILED)
        report.failed_stage = stage
        report.error_type = type(error).__name__
        report.exit_code = error.exit_code
        report.errors.append(str(error))
        touched = "registry WAS modified" if report.registry_touched else "registry was not modified"
        report.summary = f"Failed at {stage} stage ({report.error_type}; {touched}): {error}"
        logger.error(f"✗ {report.summary}")


# ============================================================================
# REPORT WRITERS
# ============================================================================

def generate_json_report(report: PipelineReport, output_path: Path) -> bool:
    """Write the report as JSON."""
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(report), f, indent=2, sort_keys=True)
        logger.info(f"JSON report written: {output_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to write JSON report: {e}")
        return False


def generate_text_report(report: PipelineReport, output_path: Path) -> bool:
    """Write the report as plain text."""
    lines = [
        "=" * 80,
        "RELEASE GATE REPORT",
        "=" * 80,
        f"Package:           {report.package}",
        f"Source Version:    {report.source_version}",
        f"Registry Version:  {report.registry_version or '(none)'}",
        f"Final State:       {report.state.upper()}",
        f"Timestamp:         {report.timestamp}",
        f"Duration:          {report.duration_seconds:.2f}s",
        "",
        "-" * 80,
        "GATE",
        "-" * 80,
        report.decision_reason or "(not evaluated)",
        "",
        "-" * 80,
        "STAGES",
        "-" * 80,
        f"Registry Touched:  {'YES' if report.registry_touched else 'NO'}",
        f"Artifact:          {report.artifact or '-'}",
        f"Release URL:       {report.release_url or '-'}",
        f"Failed Stage:      {report.failed_stage or '-'}",
        "",
    ]

    if report.transitions:
        lines.append("Transitions:")
        for transition in report.transitions:
            lines.append(f"  {transition}")
        lines.append("")

    if report.errors:
        lines.append("-" * 80)
        lines.append(f"ERRORS ({len(report.errors)})")
        lines.append("-" * 80)
        for error in report.errors:
            lines.append(f"  ✗ {error}")
        lines.append("")

    lines.extend([
        "-" * 80,
        "SUMMARY",
        "-" * 80,
        report.summary,
        "",
        f"Exit Code: {report.exit_code}",
        "=" * 80,
    ])

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write("\n".join(lines))
        logger.info(f"Text report written: {output_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to write text report: {e}")
        return False
