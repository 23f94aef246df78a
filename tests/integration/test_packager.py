#!/usr/bin/env python3
"""
Tests for ArtifactPackager and the artifact naming contract.
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from release_gate.errors import ConfigurationError, PackagingError
from release_gate.manifest import Manifest, read_manifest
from release_gate.packager import (
    DEFAULT_HIDDEN_ENV,
    ArtifactPackager,
    artifact_identity,
    artifact_path,
)
from release_gate.version_gate import Version
from tests.fakes import write_manifest


def completed(returncode=0, stderr=""):
    return subprocess.CompletedProcess(["cargo", "package"], returncode, stdout="", stderr=stderr)


# ============================================================================
# TEST: NAMING CONTRACT
# ============================================================================

class TestArtifactNaming:

    def test_identity_is_name_dash_version(self):
        assert artifact_identity("foo", Version.parse("1.3.2")) == "foo-1.3.2"
        assert artifact_identity("foo", "1.3.2") == "foo-1.3.2"

    def test_identity_is_deterministic(self, tmp_path):
        first = tmp_path / "a"
        second = tmp_path / "b"
        write_manifest(first, name="foo", version="1.3.2")
        write_manifest(second, name="foo", version="1.3.2")
        identities = {
            artifact_identity(m.name, m.version)
            for m in (read_manifest(first), read_manifest(second), read_manifest(first))
        }
        assert identities == {"foo-1.3.2"}

    @pytest.mark.parametrize("name,version", [("", "1.0.0"), ("foo", None), ("foo", "")])
    def test_identity_requires_fields(self, name, version):
        with pytest.raises(ConfigurationError):
            artifact_identity(name, version)

    def test_default_path(self, tmp_path):
        manifest = Manifest("foo", Version(1, 3, 2), tmp_path / "Cargo.toml")
        assert artifact_path(tmp_path, manifest) == tmp_path / "target" / "package" / "foo-1.3.2.crate"

    def test_relative_target_dir_is_under_checkout(self, tmp_path):
        manifest = Manifest("foo", Version(1, 3, 2), tmp_path / "Cargo.toml")
        path = artifact_path(tmp_path, manifest, Path("build"))
        assert path == tmp_path / "build" / "package" / "foo-1.3.2.crate"


# ============================================================================
# TEST: PACKAGING
# ============================================================================

class TestArtifactPackager:

    @pytest.fixture
    def manifest(self, checkout):
        return read_manifest(checkout)

    def test_runs_cargo_package_with_all_features(self, checkout, manifest, monkeypatch):
        monkeypatch.delenv("CARGO_TARGET_DIR", raising=False)
        expected = checkout / "target" / "package" / "foo-1.3.2.crate"

        def fake_run(cmd, cwd=None, env=None, hide_env=None):
            expected.parent.mkdir(parents=True, exist_ok=True)
            expected.write_bytes(b"x" * 10)
            return completed()

        with patch("release_gate.packager.run_command", side_effect=fake_run) as run:
            artifact = ArtifactPackager().package(checkout, manifest)

        run.assert_called_once_with(
            ["cargo", "package", "--all-features"], cwd=checkout, env=None, hide_env=DEFAULT_HIDDEN_ENV
        )
        assert artifact.path == expected
        assert artifact.identity == "foo-1.3.2"
        assert artifact.filename == "foo-1.3.2.crate"
        assert artifact.size_bytes == 10
        assert len(artifact.sha256) == 64

    def test_custom_target_dir_exported(self, checkout, manifest, tmp_path):
        target = tmp_path / "out"
        expected = target / "package" / "foo-1.3.2.crate"

        def fake_run(cmd, cwd=None, env=None, hide_env=None):
            assert env == {"CARGO_TARGET_DIR": str(target)}
            expected.parent.mkdir(parents=True, exist_ok=True)
            expected.write_bytes(b"x")
            return completed()

        with patch("release_gate.packager.run_command", side_effect=fake_run):
            artifact = ArtifactPackager({"target_dir": str(target)}).package(checkout, manifest)
        assert artifact.path == expected

    def test_build_failure(self, checkout, manifest):
        with patch("release_gate.packager.run_command", return_value=completed(101, "error[E0425]")):
            with pytest.raises(PackagingError, match="E0425"):
                ArtifactPackager().package(checkout, manifest)

    def test_missing_artifact_breaks_contract(self, checkout, manifest, monkeypatch):
        monkeypatch.delenv("CARGO_TARGET_DIR", raising=False)
        with patch("release_gate.packager.run_command", return_value=completed()):
            with pytest.raises(PackagingError, match="not found"):
                ArtifactPackager().package(checkout, manifest)

    def test_features_flag_can_be_disabled(self, checkout, manifest):
        with patch("release_gate.packager.run_command", return_value=completed(1)) as run:
            with pytest.raises(PackagingError):
                ArtifactPackager({"all_features": False}).package(checkout, manifest)
        assert run.call_args.args[0] == ["cargo", "package"]

    def test_build_never_sees_tokens(self, checkout, manifest, monkeypatch):
        monkeypatch.delenv("CARGO_TARGET_DIR", raising=False)
        monkeypatch.setenv("CRATES_IO_TOKEN", "registry-secret")
        monkeypatch.setenv("CARGO_REGISTRY_TOKEN", "registry-secret")
        monkeypatch.setenv("GITHUB_TOKEN", "github-secret")
        expected = checkout / "target" / "package" / "foo-1.3.2.crate"
        captured = {}

        def fake_subprocess_run(cmd, cwd=None, env=None, **kwargs):
            captured["env"] = env
            expected.parent.mkdir(parents=True, exist_ok=True)
            expected.write_bytes(b"x")
            return completed()

        with patch("release_gate.tooling.subprocess.run", side_effect=fake_subprocess_run):
            ArtifactPackager().package(checkout, manifest)

        assert captured["env"] is not None
        for name in ("CRATES_IO_TOKEN", "CARGO_REGISTRY_TOKEN", "GITHUB_TOKEN"):
            assert name not in captured["env"]

    def test_custom_token_names_hidden(self, checkout, manifest, monkeypatch):
        monkeypatch.setenv("MY_REGISTRY_TOKEN", "registry-secret")
        with patch("release_gate.tooling.subprocess.run", return_value=completed(1)) as run:
            with pytest.raises(PackagingError):
                ArtifactPackager(hidden_env=("MY_REGISTRY_TOKEN",)).package(checkout, manifest)
        assert "MY_REGISTRY_TOKEN" not in run.call_args.kwargs["env"]
