"""
Registry adapters and the RegistryPublisher stage.

The registry is reached through ``AbstractRegistry``: a version lookup used by
the gate and the irreversible publish operation. ``CratesIoRegistry`` talks to
crates.io over HTTP for lookups and shells out to ``cargo publish`` for the
upload.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import requests

from release_gate.credentials import Credentials
from release_gate.errors import (
    AuthenticationError,
    ConfigurationError,
    PublishConflictError,
    TransportError,
)
from release_gate.tooling import run_command
from release_gate.version_gate import Version

logger = logging.getLogger(__name__)

# Release-host token kept out of the publish process unless overridden
DEFAULT_HIDDEN_ENV = ("GITHUB_TOKEN",)


class PublishOutcome(Enum):
    """Result of a registry publish call."""
    OK = "ok"
    CONFLICT = "conflict"
    AUTH_ERROR = "auth_error"
    NETWORK_ERROR = "network_error"


# ============================================================================
# REGISTRY ABSTRACTION LAYER
# ============================================================================

class AbstractRegistry(ABC):
    """Interface to the package registry."""

    @abstractmethod
    def lookup_latest_version(self, name: str) -> Optional[Version]:
        """Return the newest published version, or None if never published."""
        pass

    @abstractmethod
    def publish(self, checkout: Path, credentials: Credentials) -> Tuple[PublishOutcome, str]:
        """Upload the package in ``checkout``. Returns (outcome, detail)."""
        pass

    @property
    def location(self) -> str:
        return self.__class__.__name__


CONFLICT_MARKERS = (
    "already exists",
    "already uploaded",
)

AUTH_MARKERS = (
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "invalid token",
    "no token found",
    "authentication",
)


def classify_publish_failure(stderr: str) -> PublishOutcome:
    """Map publish tool output to an outcome."""
    text = (stderr or "").lower()
    if any(marker in text for marker in CONFLICT_MARKERS):
        return PublishOutcome.CONFLICT
    if any(marker in text for marker in AUTH_MARKERS):
        return PublishOutcome.AUTH_ERROR
    return PublishOutcome.NETWORK_ERROR


class CratesIoRegistry(AbstractRegistry):
    """
    crates.io adapter.

    Lookups use the public HTTP API; publishing runs ``cargo publish`` with the
    token exported as ``CARGO_REGISTRY_TOKEN`` for that one process. Variables
    named in ``hidden_env`` (the release-host token) are removed from its
    environment.
    """

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None,
                 hidden_env: Optional[Iterable[str]] = None):
        self.config = config
        self.hidden_env = tuple(DEFAULT_HIDDEN_ENV if hidden_env is None else hidden_env)
        self.api_url = config.get("api_url", "https://crates.io/api/v1").rstrip("/")
        self.user_agent = config.get("user_agent", "release-gate (https://github.com)")
        self.timeout = config.get("timeout_seconds", 30)
        self.session = session or requests.Session()
        logger.info(f"CratesIoRegistry initialized: api_url={self.api_url}")

    @property
    def location(self) -> str:
        return self.api_url

    def lookup_latest_version(self, name: str) -> Optional[Version]:
        url = f"{self.api_url}/crates/{name}"
        try:
            response = self.session.get(
                url,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Registry lookup for {name} failed: {e}")

        if response.status_code == 404:
            logger.info(f"Package {name} not found on registry")
            return None
        if response.status_code in (401, 403):
            raise AuthenticationError(f"Registry lookup for {name} rejected: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise TransportError(f"Registry lookup for {name} failed: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"Registry returned invalid JSON for {name}: {e}")

        max_version = (payload.get("crate") or {}).get("max_version")
        if not max_version:
            return None

        try:
            version = Version.parse(max_version)
        except ConfigurationError as e:
            raise TransportError(f"Registry returned an unparseable max_version for {name}: {e}")
        logger.info(f"Registry version of {name}: {version}")
        return version

    def publish(self, checkout: Path, credentials: Credentials) -> Tuple[PublishOutcome, str]:
        result = run_command(
            ["cargo", "publish"],
            cwd=checkout,
            env={"CARGO_REGISTRY_TOKEN": credentials.require()},
            hide_env=self.hidden_env,
        )
        if result.returncode == 0:
            return PublishOutcome.OK, ""

        detail = (result.stderr or result.stdout or "").strip()
        return classify_publish_failure(detail), detail


# ============================================================================
# PUBLISHER STAGE
# ============================================================================

class RegistryPublisher:
    """
    Pushes the package to the registry.

    Knows nothing about the gate; the coordinator decides whether it runs.
    Every outcome other than OK is raised.
    """

    def __init__(self, registry: AbstractRegistry):
        self.registry = registry

    def publish(self, checkout: Path, credentials: Credentials) -> None:
        outcome, detail = self.registry.publish(Path(checkout), credentials)

        if outcome == PublishOutcome.OK:
            logger.info("✓ Registry publish accepted")
            return

        message = f"Registry publish failed ({outcome.value})"
        if detail:
            message = f"{message}: {detail[-500:]}"

        if outcome == PublishOutcome.CONFLICT:
            raise PublishConflictError(message)
        if outcome == PublishOutcome.AUTH_ERROR:
            raise AuthenticationError(message)
        raise TransportError(message)
