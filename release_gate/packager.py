"""
ArtifactPackager stage.

Builds the distributable ``.crate`` file and owns the artifact naming
contract: ``{name}-{version}{extension}`` under ``<target_dir>/package``.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from release_gate.errors import ConfigurationError, PackagingError
from release_gate.manifest import Manifest
from release_gate.tooling import calculate_sha256, run_command
from release_gate.version_gate import Version

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".crate"

# Registry and release-host tokens never reach the build
DEFAULT_HIDDEN_ENV = ("CRATES_IO_TOKEN", "CARGO_REGISTRY_TOKEN", "GITHUB_TOKEN")


def artifact_identity(name: str, version) -> str:
    """Canonical artifact identity, e.g. ``foo-1.3.2``."""
    if not name:
        raise ConfigurationError("Artifact identity requires a package name")
    if version is None or str(version) == "":
        raise ConfigurationError("Artifact identity requires a package version")
    return f"{name}-{version}"


def artifact_path(checkout: Path, manifest: Manifest, target_dir: Optional[Path] = None,
                  extension: str = DEFAULT_EXTENSION) -> Path:
    """Where the packaging tool leaves the artifact for ``manifest``."""
    target = Path(target_dir) if target_dir else Path(checkout) / "target"
    if not target.is_absolute():
        target = Path(checkout) / target
    return target / "package" / f"{artifact_identity(manifest.name, manifest.version)}{extension}"


@dataclass(frozen=True)
class Artifact:
    """A packaged file ready to attach to a release."""
    name: str
    version: Version
    path: Path
    sha256: str = ""
    size_bytes: int = 0

    @property
    def identity(self) -> str:
        return artifact_identity(self.name, self.version)

    @property
    def filename(self) -> str:
        return self.path.name


class AbstractPackager(ABC):
    """Interface for artifact packagers."""

    @abstractmethod
    def package(self, checkout: Path, manifest: Manifest) -> Artifact:
        pass


class ArtifactPackager(AbstractPackager):
    """
    Runs ``cargo package`` with every optional feature enabled.

    The build runs with every credential variable in ``hidden_env`` removed
    from its environment.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 hidden_env: Optional[Iterable[str]] = None):
        config = config or {}
        self.hidden_env = tuple(DEFAULT_HIDDEN_ENV if hidden_env is None else hidden_env)
        self.all_features = config.get("all_features", True)
        self.extension = config.get("extension", DEFAULT_EXTENSION)
        target_dir = config.get("target_dir") or os.environ.get("CARGO_TARGET_DIR")
        self.target_dir = Path(target_dir) if target_dir else None

    def expected_path(self, checkout: Path, manifest: Manifest) -> Path:
        return artifact_path(checkout, manifest, self.target_dir, self.extension)

    def package(self, checkout: Path, manifest: Manifest) -> Artifact:
        """
        Build the artifact and verify it landed at its derived path.

        Raises:
            PackagingError: If the tool fails or the artifact is missing
        """
        checkout = Path(checkout)
        expected = self.expected_path(checkout, manifest)

        cmd = ["cargo", "package"]
        if self.all_features:
            cmd.append("--all-features")

        env = {"CARGO_TARGET_DIR": str(expected.parent.parent)} if self.target_dir else None
        result = run_command(cmd, cwd=checkout, env=env, hide_env=self.hidden_env)
        if result.returncode != 0:
            detail = (result.stderr or "").strip()[-500:]
            raise PackagingError(f"Packaging failed (exit code {result.returncode}): {detail}")

        if not expected.is_file():
            raise PackagingError(f"Packaging succeeded but artifact not found at {expected}")

        artifact = Artifact(
            name=manifest.name,
            version=manifest.version,
            path=expected,
            sha256=calculate_sha256(expected),
            size_bytes=expected.stat().st_size,
        )
        logger.info(f"✓ Packaged {artifact.filename} ({artifact.size_bytes:,} bytes)")
        return artifact
