"""
Package manifest reader.

Reads the ``[package]`` table of a checkout's ``Cargo.toml``. The manifest is
read once per run and never written.
"""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

from release_gate.errors import ConfigurationError
from release_gate.version_gate import Version

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "Cargo.toml"


@dataclass(frozen=True)
class Manifest:
    """Package identity declared by the checkout."""
    name: str
    version: Version
    path: Path


def read_manifest(checkout: Path) -> Manifest:
    """
    Read name and version from the checkout's manifest.

    Raises:
        ConfigurationError: If the manifest is missing, unparseable, lacks a
            name or version, or inherits its version from a workspace
    """
    manifest_path = Path(checkout) / MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise ConfigurationError(f"Manifest not found: {manifest_path}")

    try:
        with open(manifest_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"TOML parse error in {manifest_path}: {e}")

    package = data.get("package")
    if not isinstance(package, dict):
        raise ConfigurationError(f"{manifest_path} has no [package] table")

    name = package.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"{manifest_path} is missing package.name")

    raw_version = package.get("version")
    if isinstance(raw_version, dict):
        raise ConfigurationError(
            f"{manifest_path} inherits package.version from a workspace; "
            "workspace releases are not supported"
        )
    if raw_version is None:
        raise ConfigurationError(f"{manifest_path} is missing package.version")

    manifest = Manifest(name=name.strip(), version=Version.parse(raw_version), path=manifest_path)
    logger.debug(f"Read manifest {manifest.name} {manifest.version} from {manifest_path}")
    return manifest
