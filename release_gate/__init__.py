"""
Release Gate

Decides whether a crate's manifest version is newer than the one on the
registry and, if so, publishes it to the registry and then creates the
matching release on the source-control host.
"""

__version__ = "1.0.0"
__all__ = [
    "config",
    "coordinator",
    "credentials",
    "errors",
    "manifest",
    "packager",
    "registry",
    "release_host",
    "version_gate",
]
