"""
Git credential resolution.

Turns named auth profiles from configuration into credentials that can be
applied to git subprocesses.
"""

from syncloop.core.gitauth.models import GitAuthEntry
from syncloop.core.gitauth.resolver import (
    AuthResolutionError,
    GitAuthResolver,
    UnknownAuthProfileError,
)

__all__ = [
    "AuthResolutionError",
    "GitAuthEntry",
    "GitAuthResolver",
    "UnknownAuthProfileError",
]
