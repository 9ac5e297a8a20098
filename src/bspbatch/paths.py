from __future__ import annotations

from pathlib import Path

import bspbatch


def package_root() -> Path:
    """
    Return the installed `bspbatch` package directory.

    Bundled assets live under `<package_root>/assets`, so this stays correct for
    editable installs and wheels alike.
    """

    return Path(bspbatch.__file__).resolve().parent


def missing_texture_path() -> Path:
    return package_root() / "assets" / "missing.png"
