from __future__ import annotations

import importlib
import os
from pathlib import Path

__all__ = ["get_unidic_dicdir"]


def _dicdir_from_module(module_name: str) -> Path | None:
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    raw_dicdir = getattr(module, "DICDIR", None)
    if not raw_dicdir:
        return None
    dicdir = Path(raw_dicdir)
    if (dicdir / "dicrc").exists():
        return dicdir
    return None


def get_unidic_dicdir() -> Path | None:
    """
    Locate a UniDic dictionary for MeCab.

    ``YOMI_UNIDIC_DIR`` wins when it points at a directory holding ``dicrc``;
    otherwise the ``unidic`` package and then ``unidic_lite`` are consulted.
    """
    env_dir = os.environ.get("YOMI_UNIDIC_DIR")
    if env_dir:
        candidate = Path(env_dir).expanduser()
        if (candidate / "dicrc").exists():
            return candidate
    for module_name in ("unidic", "unidic_lite"):
        dicdir = _dicdir_from_module(module_name)
        if dicdir is not None:
            return dicdir
    return None
