"""
Release host adapters and the ReleaseAnnouncer stage.

``GitHubReleaseHost`` creates a release through the GitHub REST API, asks the
host to generate notes from commit history, marks the release latest and
uploads the packaged artifact as a release asset.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from release_gate.credentials import Credentials
from release_gate.errors import (
    AuthenticationError,
    ConfigurationError,
    ReleaseConflictError,
    TransportError,
)
from release_gate.packager import Artifact
from release_gate.version_gate import Version

logger = logging.getLogger(__name__)

REPO_IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

DEFAULT_TITLE_TEMPLATE = "Release {version}"


class ReleaseOutcome(Enum):
    """Result of a create-release call."""
    OK = "ok"
    DUPLICATE_TAG = "duplicate_tag"
    AUTH_ERROR = "auth_error"
    NETWORK_ERROR = "network_error"


@dataclass
class ReleaseRecord:
    """Release entry created on the host."""
    repository: str
    tag: str
    title: str
    release_id: Optional[int] = None
    html_url: str = ""
    asset_name: str = ""
    latest: bool = True


@dataclass
class ReleaseResponse:
    outcome: ReleaseOutcome
    record: Optional[ReleaseRecord] = None
    detail: str = ""


def render_release_title(template: str, version, name: str) -> str:
    """Format a release title; unknown placeholders are a configuration error."""
    try:
        return str(template).format(version=version, name=name)
    except (AttributeError, KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(f"Invalid release title template {template!r}: {e!r}")


def validate_repo_identity(repo_identity: Optional[str]) -> str:
    if not repo_identity or not REPO_IDENTITY_PATTERN.match(repo_identity):
        raise ConfigurationError(
            f"Repository identity must look like 'owner/repo', got: {repo_identity!r}"
        )
    return repo_identity


# ============================================================================
# RELEASE HOST ABSTRACTION LAYER
# ============================================================================

class AbstractReleaseHost(ABC):
    """Interface to the source-control release host."""

    @abstractmethod
    def create_release(
        self,
        repo_identity: str,
        tag: str,
        title: str,
        artifact_path: Path,
        credentials: Credentials,
        generate_notes: bool = True,
        make_latest: bool = True,
    ) -> ReleaseResponse:
        pass


class GitHubReleaseHost(AbstractReleaseHost):
    """GitHub Releases over the REST API."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        config = config or {}
        self.api_url = config.get("api_url", "https://api.github.com").rstrip("/")
        self.timeout = config.get("timeout_seconds", 30)
        self.session = session or requests.Session()

    def _headers(self, credentials: Credentials) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.require()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @staticmethod
    def _classify(response: requests.Response) -> ReleaseOutcome:
        if response.status_code in (401, 403):
            return ReleaseOutcome.AUTH_ERROR
        if response.status_code == 422:
            try:
                errors = response.json().get("errors", [])
            except ValueError:
                errors = []
            if any(isinstance(e, dict) and e.get("code") == "already_exists" for e in errors):
                return ReleaseOutcome.DUPLICATE_TAG
        return ReleaseOutcome.NETWORK_ERROR

    def create_release(
        self,
        repo_identity: str,
        tag: str,
        title: str,
        artifact_path: Path,
        credentials: Credentials,
        generate_notes: bool = True,
        make_latest: bool = True,
    ) -> ReleaseResponse:
        headers = self._headers(credentials)
        payload = {
            "tag_name": tag,
            "name": title,
            "generate_release_notes": generate_notes,
            "make_latest": "true" if make_latest else "false",
        }

        url = f"{self.api_url}/repos/{repo_identity}/releases"
        try:
            response = self.session.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            return ReleaseResponse(ReleaseOutcome.NETWORK_ERROR, detail=f"Create release failed: {e}")

        if response.status_code != 201:
            return ReleaseResponse(
                self._classify(response),
                detail=f"Create release returned HTTP {response.status_code}: {response.text[:500]}",
            )

        body = response.json()
        record = ReleaseRecord(
            repository=repo_identity,
            tag=tag,
            title=title,
            release_id=body.get("id"),
            html_url=body.get("html_url", ""),
            latest=make_latest,
        )
        logger.info(f"Created release {tag} on {repo_identity}: {record.html_url}")

        upload_url = body.get("upload_url", "").split("{")[0]
        if not upload_url:
            return ReleaseResponse(ReleaseOutcome.NETWORK_ERROR, record, "Release has no upload_url")

        artifact_path = Path(artifact_path)
        upload_headers = dict(headers)
        upload_headers["Content-Type"] = "application/octet-stream"
        try:
            with open(artifact_path, "rb") as f:
                upload = self.session.post(
                    upload_url,
                    headers=upload_headers,
                    params={"name": artifact_path.name},
                    data=f,
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            return ReleaseResponse(ReleaseOutcome.NETWORK_ERROR, record, f"Asset upload failed: {e}")

        if upload.status_code != 201:
            return ReleaseResponse(
                self._classify(upload),
                record,
                f"Asset upload returned HTTP {upload.status_code}: {upload.text[:500]}",
            )

        record.asset_name = artifact_path.name
        return ReleaseResponse(ReleaseOutcome.OK, record)


# ============================================================================
# ANNOUNCER STAGE
# ============================================================================

class ReleaseAnnouncer:
    """
    Creates the release record for a published version.

    Only supplies tag, title and artifact; notes are generated by the host.
    """

    def __init__(
        self,
        host: AbstractReleaseHost,
        title_template: str = DEFAULT_TITLE_TEMPLATE,
        generate_notes: bool = True,
        make_latest: bool = True,
    ):
        self.host = host
        self.title_template = title_template
        self.generate_notes = generate_notes
        self.make_latest = make_latest

    def render_title(self, name: str, version: Version) -> str:
        return render_release_title(self.title_template, str(version), name)

    def announce(
        self,
        artifact: Artifact,
        version: Version,
        repo_identity: str,
        credentials: Credentials,
    ) -> ReleaseRecord:
        """
        Create the release tagged with ``version`` and attach ``artifact``.

        Raises:
            ConfigurationError: Title template cannot be rendered
            ReleaseConflictError: Tag already released
            AuthenticationError: Token rejected
            TransportError: Any other host or network failure
        """
        repo_identity = validate_repo_identity(repo_identity)
        tag = str(version)
        title = self.render_title(artifact.name, version)

        response = self.host.create_release(
            repo_identity,
            tag,
            title,
            artifact.path,
            credentials,
            generate_notes=self.generate_notes,
            make_latest=self.make_latest,
        )

        if response.outcome == ReleaseOutcome.OK:
            logger.info(f"✓ Release {tag} announced with {artifact.filename}")
            return response.record

        message = f"Release announcement failed ({response.outcome.value})"
        if response.detail:
            message = f"{message}: {response.detail}"

        if response.outcome == ReleaseOutcome.DUPLICATE_TAG:
            raise ReleaseConflictError(message)
        if response.outcome == ReleaseOutcome.AUTH_ERROR:
            raise AuthenticationError(message)
        raise TransportError(message)
