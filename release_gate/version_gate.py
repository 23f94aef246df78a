"""
Version Gate

Structured semantic-version parsing and the publish/no-publish decision.
The gate opens only when the manifest version is strictly newer than the
version the registry currently serves.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Optional, Tuple, Union

from release_gate.errors import ConfigurationError

logger = logging.getLogger(__name__)


# MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD], no leading zeros in numeric parts
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


# ============================================================================
# VERSION
# ============================================================================

@total_ordering
@dataclass(frozen=True)
class Version:
    """Semantic version ordered by semver 2.0 precedence."""
    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse a version string, raising ConfigurationError when malformed."""
        if not isinstance(text, str):
            raise ConfigurationError(f"Version must be a string, got {type(text).__name__}")

        match = SEMVER_PATTERN.match(text.strip())
        if not match:
            raise ConfigurationError(f"Malformed semantic version: {text!r}")

        major, minor, patch, prerelease, build = match.groups()
        return cls(
            major=int(major),
            minor=int(minor),
            patch=int(patch),
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            build=build or "",
        )

    def _precedence_key(self):
        # A release sorts after all of its pre-releases
        if not self.prerelease:
            pre = ((1,),)
        else:
            pre = tuple(
                (0, int(part), "") if part.isdigit() else (1, 0, part)
                for part in self.prerelease
            )
            pre = ((0,),) + pre
        return (self.major, self.minor, self.patch, pre)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence_key() == other._precedence_key()

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence_key() < other._precedence_key()

    def __hash__(self):
        return hash(self._precedence_key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text


# ============================================================================
# GATE
# ============================================================================

@dataclass
class PublishDecision:
    """Gate result plus the versions it compared. Diagnostics only."""
    publish: bool
    source_version: Version
    registry_version: Optional[Version]
    reason: str


class VersionGate:
    """Decides whether the manifest version may be published."""

    def decide(
        self,
        source_version: Union[Version, str],
        registry_version: Optional[Union[Version, str]],
    ) -> PublishDecision:
        """
        Compare the source version against the registry version.

        Args:
            source_version: Version declared by the manifest
            registry_version: Latest version on the registry, or None if the
                package has never been published

        Returns:
            PublishDecision with ``publish`` True iff source > registry

        Raises:
            ConfigurationError: If either version string is malformed
        """
        source = source_version if isinstance(source_version, Version) else Version.parse(source_version)

        if registry_version is None:
            reason = f"No published version found; bootstrapping with {source}"
            logger.info(reason)
            return PublishDecision(True, source, None, reason)

        registry = (
            registry_version if isinstance(registry_version, Version)
            else Version.parse(registry_version)
        )

        if source > registry:
            reason = f"Source version ({source}) is higher than registry version ({registry})"
            logger.info(reason)
            return PublishDecision(True, source, registry, reason)

        reason = f"Source version ({source}) is not higher than registry version ({registry})"
        logger.info(reason)
        return PublishDecision(False, source, registry, reason)
