"""Resource resolver for csschunk packaged data.

Priority for the data root:
  1. ``CSSCHUNK_DATA_ROOT`` env var (power-user override).
  2. Packaged data shipped inside the wheel (``csschunk/data/``).
"""

from __future__ import annotations

import os
from importlib.resources import files
from pathlib import Path

_REQUIRED_SUBDIRS = ("schemas",)


def _has_required_subdirs(root: Path) -> bool:
    return all((root / d).is_dir() for d in _REQUIRED_SUBDIRS)


def data_root() -> Path:
    """Return the directory containing schemas/.

    Raises ``RuntimeError`` if no valid data root can be found.
    """
    env = os.environ.get("CSSCHUNK_DATA_ROOT")
    if env:
        p = Path(env).expanduser().resolve()
        if _has_required_subdirs(p):
            return p
        raise RuntimeError(
            f"CSSCHUNK_DATA_ROOT={env!r} does not contain the required "
            f"subdirectories: {', '.join(_REQUIRED_SUBDIRS)}"
        )

    packaged = Path(str(files("csschunk") / "data"))
    if _has_required_subdirs(packaged):
        return packaged

    raise RuntimeError(
        "Cannot locate csschunk data files.  Set CSSCHUNK_DATA_ROOT or reinstall the package."
    )


def schemas_dir() -> Path:
    """Return the directory containing JSON schema files."""
    return data_root() / "schemas"
