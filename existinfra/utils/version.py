"""Semantic version parsing and comparison for Kubernetes versions."""
import re
from typing import NamedTuple, Optional, Tuple

_VERSION_RE = re.compile(
    r"^v?(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


class Version(NamedTuple):
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    def _prerelease_key(self) -> Tuple:
        # A version without a prerelease sorts after any of its prereleases
        if self.prerelease is None:
            return (1,)
        parts = []
        for ident in self.prerelease.split("."):
            parts.append((0, int(ident), "") if ident.isdigit() else (1, 0, ident))
        return (0, tuple(parts))

    def sort_key(self) -> Tuple:
        return (self.major, self.minor, self.patch, self._prerelease_key())

    def __str__(self) -> str:
        base = f"v{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


def parse(version_str: str) -> Version:
    """Parse a version such as ``v1.15.3``, ``1.16.0`` or ``v1.17.0-rc.1+abc``.

    Raises:
        ValueError: If the version string is invalid
    """
    match = _VERSION_RE.match(version_str.strip()) if isinstance(version_str, str) else None
    if not match:
        raise ValueError(f"Invalid version string: {version_str!r}")
    return Version(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        patch=int(match.group(3)),
        prerelease=match.group(4),
    )


def less_than(a: str, b: str) -> bool:
    """Return whether version ``a`` is strictly lower than version ``b``."""
    return parse(a).sort_key() < parse(b).sort_key()


def strip_prefix(version_str: str) -> str:
    """Drop the leading ``v`` used by Kubernetes release names."""
    return version_str[1:] if version_str.startswith("v") else version_str
