"""
Shared pytest fixtures for the release gate test suite.

Provides:
- Temporary checkouts with a Cargo.toml manifest
- Stage-scoped test credentials
- A coordinator factory wired to the in-memory fakes
"""

from typing import Optional

import pytest

from release_gate.coordinator import PublishCoordinator
from release_gate.credentials import Credentials
from release_gate.release_host import ReleaseAnnouncer
from tests.fakes import FakePackager, FakeRegistry, FakeReleaseHost, write_manifest

@pytest.fixture
def checkout(tmp_path):
    """Checkout of package foo at 1.3.2."""
    root = tmp_path / "checkout"
    write_manifest(root)
    return root

@pytest.fixture
def registry_credentials():
    return Credentials(source="CRATES_IO_TOKEN", token="registry-secret")

@pytest.fixture
def release_credentials():
    return Credentials(source="GITHUB_TOKEN", token="github-secret")

@pytest.fixture
def make_coordinator(registry_credentials, release_credentials):
    """Factory building a coordinator around the given fakes."""

    def _make(registry: FakeRegistry, host: Optional[FakeReleaseHost] = None,
              packager: Optional[FakePackager] = None, repo_identity: str = "acme/foo"):
        return PublishCoordinator(
            registry=registry,
            packager=packager or FakePackager(),
            announcer=ReleaseAnnouncer(host or FakeReleaseHost()),
            repo_identity=repo_identity,
            registry_credentials=registry_credentials,
            release_credentials=release_credentials,
        )

    return _make
