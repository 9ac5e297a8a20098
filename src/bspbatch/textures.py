"""Texture references and their resolution policy.

The batcher only builds :class:`TextureRef` values. Image bytes are fetched later
by whatever loader the host provides (see :class:`TextureDirectory`); when that
fails, a reference built with ``FALLBACK_ON_ERROR`` hands back the bundled
placeholder so the scene load still completes.
"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Protocol

from PIL import Image, UnidentifiedImageError

from bspbatch.paths import missing_texture_path

logger = logging.getLogger(__name__)

DEFAULT_TEXTURE_EXTS: tuple[str, ...] = (".png", ".tga", ".jpg", ".jpeg", ".bmp")


class TextureResolveError(RuntimeError):
    pass


class ResolveStrategy(Enum):
    DIRECT = "direct"
    FALLBACK_ON_ERROR = "fallback_on_error"


@dataclass(frozen=True)
class TextureImage:
    name: str
    width: int
    height: int
    rgba: bytes  # width*height*4, top row first
    is_fallback: bool = False


def decode_image_bytes(*, name: str, data: bytes) -> TextureImage:
    # Pillow sniffs the format from content, so misnamed files still decode.
    try:
        with Image.open(io.BytesIO(data)) as img:
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise TextureResolveError(f"cannot decode texture {name!r}: {exc}") from exc
    return TextureImage(name=name, width=int(rgba.width), height=int(rgba.height), rgba=rgba.tobytes())


@dataclass(frozen=True)
class FallbackTexture:
    image: TextureImage

    @staticmethod
    def from_png_bytes(data: bytes, *, name: str = "missing") -> FallbackTexture:
        img = decode_image_bytes(name=name, data=data)
        return FallbackTexture(image=replace(img, is_fallback=True))

    @staticmethod
    def from_file(path: Path) -> FallbackTexture:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise TextureResolveError(f"cannot read fallback texture {path}: {exc}") from exc
        return FallbackTexture.from_png_bytes(data, name=path.stem)


_MISSING_TEXTURE: FallbackTexture | None = None
_MISSING_TEXTURE_LOCK = threading.Lock()


def load_missing_texture() -> FallbackTexture:
    """
    Return the bundled placeholder texture.

    Decoded at most once per process and shared read-only by every build.
    A broken bundled asset is a packaging bug, so it raises instead of degrading.
    """
    global _MISSING_TEXTURE
    if _MISSING_TEXTURE is not None:
        return _MISSING_TEXTURE
    with _MISSING_TEXTURE_LOCK:
        if _MISSING_TEXTURE is None:
            try:
                _MISSING_TEXTURE = FallbackTexture.from_file(missing_texture_path())
            except TextureResolveError as exc:
                raise RuntimeError(f"bundled missing texture is invalid: {exc}") from exc
    return _MISSING_TEXTURE


class TextureLoader(Protocol):
    def load(self, name: str) -> TextureImage: ...


@dataclass(frozen=True)
class TextureRef:
    name: str
    strategy: ResolveStrategy = ResolveStrategy.FALLBACK_ON_ERROR
    srgb: bool = True
    fallback: FallbackTexture | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.strategy is ResolveStrategy.FALLBACK_ON_ERROR and self.fallback is None:
            raise ValueError(f"texture {self.name!r}: fallback strategy requires a fallback texture")

    def resolve(self, loader: TextureLoader) -> TextureImage:
        try:
            return loader.load(self.name)
        except Exception as exc:
            # Any loader failure degrades to the placeholder.
            if self.strategy is ResolveStrategy.DIRECT:
                raise
            logger.warning("Texture %s unavailable (%s); using fallback", self.name, exc)
            return self.fallback.image


class TextureResolver:
    def __init__(self, fallback: FallbackTexture, *, srgb: bool = True) -> None:
        self._fallback = fallback
        self._srgb = bool(srgb)

    @property
    def fallback(self) -> FallbackTexture:
        return self._fallback

    def reference(
        self,
        name: str,
        *,
        strategy: ResolveStrategy = ResolveStrategy.FALLBACK_ON_ERROR,
    ) -> TextureRef:
        return TextureRef(name=str(name), strategy=strategy, srgb=self._srgb, fallback=self._fallback)


def _texture_key(name: str) -> str:
    return name.replace("\\", "/").strip().strip("/").casefold()


def build_texture_index(root: Path, exts: tuple[str, ...] = DEFAULT_TEXTURE_EXTS) -> dict[str, Path]:
    """
    Map casefolded `relative/path/without/ext` to files under `root`.

    When several extensions exist for one name, the earlier entry in `exts` wins.
    """
    index: dict[str, Path] = {}
    if not root.is_dir():
        return index
    prio = {e.lower(): i for i, e in enumerate(exts)}
    found: list[tuple[str, int, Path]] = []
    for p in root.rglob("*"):
        suf = p.suffix.lower()
        if suf not in prio or not p.is_file():
            continue
        key = _texture_key(str(p.relative_to(root).with_suffix("")))
        found.append((key, prio[suf], p))
    for key, _, p in sorted(found, key=lambda it: (it[0], it[1], str(it[2]))):
        index.setdefault(key, p)
    return index


class TextureDirectory:
    """File-system texture loader with case-insensitive name lookup."""

    def __init__(self, root: Path, *, exts: tuple[str, ...] = DEFAULT_TEXTURE_EXTS) -> None:
        self._root = Path(root)
        self._exts = tuple(e.lower() for e in exts)
        self._index = build_texture_index(self._root, self._exts)

    def path_for(self, name: str) -> Path | None:
        key = _texture_key(name)
        p = self._index.get(key)
        if p is None:
            stem, dot, ext = key.rpartition(".")
            if dot and f".{ext}" in self._exts:
                p = self._index.get(stem)
        return p

    def load(self, name: str) -> TextureImage:
        p = self.path_for(name)
        if p is None:
            raise TextureResolveError(f"texture not found under {self._root}: {name}")
        try:
            data = p.read_bytes()
        except OSError as exc:
            raise TextureResolveError(f"cannot read texture {p}: {exc}") from exc
        return decode_image_bytes(name=name, data=data)
