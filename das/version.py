"""
DAS package version.

`__version__` is the base semantic version, overridable through the
`DAS_VERSION` environment variable for builds that stamp their own string.
"""

from __future__ import annotations

import os
import re
from typing import Tuple

# Bump this when making a release of the DAS package.
_BASE_SEMVER = "0.1.0"

__version__ = os.environ.get("DAS_VERSION") or _BASE_SEMVER


def _parse_semver(v: str) -> Tuple[int, int, int]:
    m = re.match(r"^\s*v?(\d+)\.(\d+)\.(\d+)", v)
    if not m:
        return (0, 0, 0)
    return (int(m.group(1)), int(m.group(2)), int(m.group(3)))


version_info: Tuple[int, int, int] = _parse_semver(_BASE_SEMVER)


def get_version() -> str:
    """Return the DAS package version string."""
    return __version__


__all__ = ["__version__", "version_info", "get_version"]
