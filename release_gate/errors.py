"""
Release Gate Exceptions

Every fatal condition in the pipeline maps to one exception class carrying the
process exit code the CLI returns for it (exit codes 40-49). A gate skip is not
an exception; see ``PipelineState.SKIPPED``.
"""

from typing import Optional


class ReleaseGateError(Exception):
    """Base exception for all release gate errors."""
    exit_code = 49

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(ReleaseGateError):
    """Manifest, config file or credential problem detected before any side effect."""
    exit_code = 40


class PackagingError(ReleaseGateError):
    """Packaging tool failed or the artifact is not where its name says it is."""
    exit_code = 41


class PublishConflictError(ReleaseGateError):
    """Registry already holds this version."""
    exit_code = 42


class TransportError(ReleaseGateError):
    """Network failure talking to the registry or the release host."""
    exit_code = 43


class AuthenticationError(TransportError):
    """Credentials rejected by the registry or the release host."""
    exit_code = 44


class ReleaseConflictError(ReleaseGateError):
    """Release host already has a release for this tag."""
    exit_code = 45


class InconsistentStateError(ReleaseGateError):
    """
    Registry publish succeeded but a later stage failed.

    The registry cannot be rolled back, so the release record has to be
    reconciled by hand. ``cause`` holds the error raised by the failing stage.
    """
    exit_code = 46

    def __init__(self, message: str, stage: str, cause: Optional[ReleaseGateError] = None):
        super().__init__(message)
        self.stage = stage
        self.cause = cause
