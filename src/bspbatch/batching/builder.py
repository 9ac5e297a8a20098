from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass

from bspbatch.batching.face_filter import drawable_texture
from bspbatch.batching.grouping import partition_by_texture, sort_faces_by_texture
from bspbatch.batching.prefab import Cluster, PrefabElement, ScenePrefab
from bspbatch.batching.transcode import MeshData, transcode_faces
from bspbatch.build_report import BUILD_STAGE_CLUSTER_BATCH, BUILD_STAGE_MODEL_BATCH, BuildReporter
from bspbatch.textures import TextureResolver
from bspbatch.world.model import Face, Leaf, World, WorldTexture

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Batch:
    cluster: int | None
    texture_index: int
    texture: WorldTexture
    mesh: MeshData


def batch_faces(
    world: World,
    faces: list[Face],
    *,
    cluster: int | None,
    report: BuildReporter | None = None,
) -> list[Batch]:
    """
    Group faces by texture and transcode each surviving group into one batch.

    Groups whose texture is unknown or not drawable are dropped, and so are groups
    that end up with no vertices.
    """
    out: list[Batch] = []
    for tex_index, run in partition_by_texture(sort_faces_by_texture(world, faces)):
        tex = drawable_texture(world, tex_index, report=report, face_count=len(run))
        if tex is None:
            continue
        verts = transcode_faces(run)
        if not verts:
            continue
        out.append(Batch(cluster=cluster, texture_index=int(tex_index), texture=tex, mesh=MeshData(tuple(verts))))
    return out


def cluster_faces(world: World, leaves: list[Leaf]) -> list[Face]:
    faces: list[Face] = []
    for leaf in leaves:
        faces.extend(world.leaf_faces(leaf))
    return faces


def batch_cluster(
    world: World,
    cluster_id: int,
    leaves: list[Leaf],
    *,
    report: BuildReporter | None = None,
) -> list[Batch]:
    return batch_faces(world, cluster_faces(world, leaves), cluster=int(cluster_id), report=report)


def batch_models(
    world: World,
    *,
    merge_models: bool = False,
    report: BuildReporter | None = None,
) -> list[Batch]:
    if merge_models:
        faces: list[Face] = []
        for model in world.models:
            faces.extend(world.model_faces(model))
        return batch_faces(world, faces, cluster=None, report=report)

    out: list[Batch] = []
    for model in world.models:
        out.extend(batch_faces(world, world.model_faces(model), cluster=None, report=report))
    return out


class PrefabBuilder:
    """
    Turn a decoded World into a :class:`ScenePrefab`.

    One cluster node per distinct cluster id (even when it ends up with no
    renderable children), one child per (cluster, texture) batch, then one
    top-level node per model batch.
    """

    def __init__(
        self,
        resolver: TextureResolver,
        *,
        merge_models: bool = False,
        report: BuildReporter | None = None,
    ) -> None:
        self._resolver = resolver
        self._merge_models = bool(merge_models)
        self._report = report

    def build(self, world: World) -> ScenePrefab:
        prefab = ScenePrefab()
        report = self._report

        with _maybe_stage(report, BUILD_STAGE_CLUSTER_BATCH):
            for cluster_id, leaves in world.clusters():
                node = prefab.add(ScenePrefab.ROOT, PrefabElement(cluster=Cluster(id=int(cluster_id))))
                if report is not None:
                    report.count_cluster()
                for batch in batch_cluster(world, cluster_id, leaves, report=report):
                    self._add_batch(prefab, node, batch)

        with _maybe_stage(report, BUILD_STAGE_MODEL_BATCH):
            for batch in batch_models(world, merge_models=self._merge_models, report=report):
                self._add_batch(prefab, None, batch)

        logger.info(
            "Built prefab for %s: %d clusters, %d renderable nodes",
            world.source or "world",
            len(prefab.cluster_nodes()),
            len(prefab.renderable_nodes()),
        )
        return prefab

    def _add_batch(self, prefab: ScenePrefab, parent: int | None, batch: Batch) -> int:
        if self._report is not None:
            self._report.count_batch(cluster=batch.cluster, texture_name=batch.texture.name, vertices=len(batch.mesh))
        return prefab.add(
            parent,
            PrefabElement(texture=self._resolver.reference(batch.texture.name), mesh=batch.mesh),
        )


def _maybe_stage(report: BuildReporter | None, name: str):
    if report is None:
        return nullcontext()
    return report.stage(name)
