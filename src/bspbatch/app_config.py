from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from bspbatch.textures import DEFAULT_TEXTURE_EXTS

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class BatchConfig:
    # Directory that texture names are resolved against (None: every texture uses the fallback).
    texture_root: str | None = None
    # Extensions tried for a texture name, in priority order.
    texture_exts: tuple[str, ...] = DEFAULT_TEXTURE_EXTS
    # Replace the bundled placeholder image with a project-specific one.
    missing_texture: str | None = None
    # Merge all standalone models into one texture grouping pass.
    merge_models: bool = False
    # Also batch model 0 (the world model) as a standalone model.
    include_world_model: bool = False
    # Texture references request sRGB color space.
    srgb: bool = True
    log_level: str = "INFO"


def load_batch_config(path: Path | None) -> BatchConfig:
    """
    Load a BatchConfig from a JSON object.

    Missing files fall back to defaults; fields with the wrong type are ignored
    with a warning so a stale config never blocks a build.
    """

    if path is None:
        return BatchConfig()
    p = Path(path)
    if not p.exists() or not p.is_file():
        logger.warning("Config not found: %s (using defaults)", p)
        return BatchConfig()
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Config unreadable: %s (%s); using defaults", p, exc)
        return BatchConfig()
    if not isinstance(payload, dict):
        logger.warning("Config is not a JSON object: %s", p)
        return BatchConfig()
    return batch_config_from_payload(payload, base_dir=p.parent)


def batch_config_from_payload(payload: dict, *, base_dir: Path | None = None) -> BatchConfig:
    kw: dict = {}

    def _path(key: str) -> None:
        v = payload.get(key)
        if v is None:
            return
        if not isinstance(v, str) or not v.strip():
            logger.warning("Ignoring config %s=%r (expected path string)", key, v)
            return
        raw = Path(v.strip())
        if not raw.is_absolute() and base_dir is not None:
            raw = base_dir / raw
        kw[key] = str(raw)

    def _flag(key: str) -> None:
        v = payload.get(key)
        if v is None:
            return
        if not isinstance(v, bool):
            logger.warning("Ignoring config %s=%r (expected bool)", key, v)
            return
        kw[key] = v

    _path("texture_root")
    _path("missing_texture")
    _flag("merge_models")
    _flag("include_world_model")
    _flag("srgb")

    exts = payload.get("texture_exts")
    if exts is not None:
        if isinstance(exts, list) and exts and all(isinstance(e, str) and e.strip() for e in exts):
            kw["texture_exts"] = tuple(e.strip().lower() if e.strip().startswith(".") else "." + e.strip().lower() for e in exts)
        else:
            logger.warning("Ignoring config texture_exts=%r (expected list of extensions)", exts)

    level = payload.get("log_level")
    if level is not None:
        if isinstance(level, str) and level.strip().upper() in _LOG_LEVELS:
            kw["log_level"] = level.strip().upper()
        else:
            logger.warning("Ignoring config log_level=%r", level)

    unknown = sorted(set(payload) - {"texture_root", "missing_texture", "merge_models", "include_world_model", "srgb", "texture_exts", "log_level"})
    if unknown:
        logger.warning("Unknown config keys ignored: %s", ", ".join(unknown))

    return BatchConfig(**kw)
