from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path

from bspbatch.app_config import BatchConfig
from bspbatch.batching.builder import PrefabBuilder
from bspbatch.batching.prefab import ScenePrefab
from bspbatch.build_report import BUILD_STAGE_DECODE, BuildReporter
from bspbatch.textures import FallbackTexture, TextureResolver, load_missing_texture
from bspbatch.world.bsp_decode import decode_world, load_world
from bspbatch.world.model import World


def fallback_for_config(cfg: BatchConfig) -> FallbackTexture:
    if cfg.missing_texture:
        return FallbackTexture.from_file(Path(cfg.missing_texture))
    return load_missing_texture()


class BspFormat:
    """
    Asset format entry points: raw bytes in, World or ScenePrefab out.

    A decode failure raises before any node exists; everything after that degrades
    to less geometry or placeholder textures instead of failing.
    """

    NAME = "Bsp"

    def __init__(
        self,
        config: BatchConfig | None = None,
        *,
        fallback: FallbackTexture | None = None,
        report: BuildReporter | None = None,
    ) -> None:
        self.config = config or BatchConfig()
        self._fallback = fallback
        self._report = report

    @property
    def fallback(self) -> FallbackTexture:
        if self._fallback is None:
            self._fallback = fallback_for_config(self.config)
        return self._fallback

    def _decode_stage(self):
        if self._report is None:
            return nullcontext()
        return self._report.stage(BUILD_STAGE_DECODE)

    def import_world(self, data: bytes) -> World:
        with self._decode_stage():
            return decode_world(data, include_world_model=self.config.include_world_model)

    def import_prefab(self, data: bytes) -> ScenePrefab:
        return self.build_prefab(self.import_world(data))

    def load_prefab(self, path: Path) -> ScenePrefab:
        with self._decode_stage():
            world = load_world(path, include_world_model=self.config.include_world_model)
        return self.build_prefab(world)

    def build_prefab(self, world: World) -> ScenePrefab:
        resolver = TextureResolver(self.fallback, srgb=self.config.srgb)
        builder = PrefabBuilder(resolver, merge_models=self.config.merge_models, report=self._report)
        return builder.build(world)
