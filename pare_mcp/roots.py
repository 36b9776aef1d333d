"""
Root confinement for working directories and path parameters.

Security features:
- Path normalization (expands ~, resolves .. and symlinks)
- Component-wise containment (/home/user-evil never matches /home/user)
- Null byte rejection
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path

from pare_mcp.errors import InvalidInput, PathOutsideAllowedRoots

logger = logging.getLogger("pare-mcp.security")


@dataclass(frozen=True)
class CanonicalPath:
    """An absolute, symlink-resolved path. Build with CanonicalPath.of()."""

    value: str

    @classmethod
    def of(
        cls,
        path: str | os.PathLike[str],
        *,
        home: str | None = None,
        base: str | None = None,
    ) -> CanonicalPath:
        """
        Canonicalize a path.

        Args:
            path: Raw path from config or a tool call
            home: Home directory used for ~ expansion (defaults to the process's)
            base: Directory relative paths are resolved against (defaults to cwd)

        Raises:
            InvalidInput: If the path is empty or contains null bytes
        """
        path_str = os.fspath(path)
        if not path_str.strip():
            raise InvalidInput("Path is empty", subject=path_str)
        if "\x00" in path_str:
            raise InvalidInput("Path contains null bytes", subject=path_str)

        expanded = expand_home(path_str, home)
        if not os.path.isabs(expanded):
            expanded = os.path.join(base or os.getcwd(), expanded)
        return cls(os.path.realpath(expanded))

    @property
    def path(self) -> Path:
        return Path(self.value)

    def is_within(self, root: CanonicalPath) -> bool:
        """True if this path equals root or sits below it on a segment boundary."""
        try:
            self.path.relative_to(root.path)
            return True
        except ValueError:
            return False

    def __str__(self) -> str:
        return self.value


def expand_home(path: str, home: str | None = None) -> str:
    """Expand a leading ~ using an explicit home directory when given."""
    if home is None or not path.startswith("~"):
        return os.path.expanduser(path)
    if path == "~":
        return home
    if path[1] in ("/", "\\"):
        return os.path.join(home, path[2:])
    # ~otheruser: leave to the OS
    return os.path.expanduser(path)


class RootConfinement:
    """Checks paths against a set of canonical allowed roots."""

    def __init__(self, allowed_roots: tuple[CanonicalPath, ...] | None):
        # None = unrestricted
        self.allowed_roots = allowed_roots

    @classmethod
    def from_policy(cls, policy) -> RootConfinement:
        return cls(policy.allowed_roots)

    @property
    def unrestricted(self) -> bool:
        return self.allowed_roots is None

    def is_allowed(self, path: CanonicalPath) -> bool:
        if self.unrestricted:
            return True
        return any(path.is_within(root) for root in self.allowed_roots)

    def check(
        self,
        path: str | os.PathLike[str],
        param: str = "cwd",
        *,
        base: str | None = None,
    ) -> CanonicalPath:
        """
        Canonicalize and confine a path.

        Returns:
            The canonical path, ready to hand to the executor

        Raises:
            PathOutsideAllowedRoots: If no allowed root contains the path
        """
        canonical = CanonicalPath.of(path, base=base)
        if self.is_allowed(canonical):
            return canonical

        roots = ", ".join(str(r) for r in self.allowed_roots or ())
        logger.warning(f"Rejected {param} outside allowed roots: {canonical}")
        raise PathOutsideAllowedRoots(
            f'Path "{path}" ({param}) is outside allowed roots. Allowed roots: {roots}',
            subject=str(path),
        )
