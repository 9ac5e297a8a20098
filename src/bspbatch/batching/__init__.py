"""Face filtering, texture grouping and vertex transcoding for BSP worlds."""

from bspbatch.batching.builder import Batch, PrefabBuilder, batch_cluster, batch_faces, batch_models
from bspbatch.batching.prefab import Cluster, PrefabElement, PrefabEntity, ScenePrefab
from bspbatch.batching.transcode import MeshData, PosNormTex

__all__ = [
    "Batch",
    "Cluster",
    "MeshData",
    "PosNormTex",
    "PrefabBuilder",
    "PrefabElement",
    "PrefabEntity",
    "ScenePrefab",
    "batch_cluster",
    "batch_faces",
    "batch_models",
]
