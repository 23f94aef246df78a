"""
Stage-scoped credentials.

Tokens are opaque strings read from the environment. Each stage receives only
its own ``Credentials`` object; the value is never rendered by ``repr`` or
``str``.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from release_gate.errors import ConfigurationError


@dataclass(frozen=True)
class Credentials:
    """An opaque token plus the name of the variable it came from."""
    source: str
    token: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_environment(cls, variable: str, environ: Optional[Mapping[str, str]] = None) -> "Credentials":
        environ = os.environ if environ is None else environ
        value = environ.get(variable) or None
        return cls(source=variable, token=value)

    @property
    def present(self) -> bool:
        return bool(self.token)

    def require(self) -> str:
        """Return the token, raising ConfigurationError when it is unset."""
        if not self.token:
            raise ConfigurationError(f"Credential {self.source} is not set")
        return self.token

    def __str__(self) -> str:
        return f"Credentials({self.source}, {'set' if self.present else 'unset'})"
