from __future__ import annotations

from dataclasses import dataclass

from bspbatch.batching.transcode import MeshData
from bspbatch.textures import FallbackTexture, ResolveStrategy, TextureRef

PREFAB_SCHEMA = "bspbatch.prefab.v1"

_ELEMENT_FIELDS = frozenset({"cluster", "texture", "mesh"})
_TEXTURE_FIELDS = frozenset({"name", "strategy", "srgb"})


@dataclass(frozen=True)
class Cluster:
    id: int


@dataclass(frozen=True)
class PrefabElement:
    """
    One scene node.

    Cluster nodes carry only `cluster`; renderable nodes carry `texture` and `mesh`.
    """

    cluster: Cluster | None = None
    texture: TextureRef | None = None
    mesh: MeshData | None = None

    @property
    def is_renderable(self) -> bool:
        return self.mesh is not None


@dataclass(frozen=True)
class PrefabEntity:
    parent: int | None
    element: PrefabElement | None


class ScenePrefab:
    """
    Flat list of nodes with parent indices.

    Index 0 is a structural root with no data; cluster nodes hang off it and
    standalone model batches are top-level (no parent).
    """

    ROOT = 0

    def __init__(self) -> None:
        self._entities: list[PrefabEntity] = [PrefabEntity(parent=None, element=None)]

    def __len__(self) -> int:
        return len(self._entities)

    def add(self, parent: int | None, element: PrefabElement | None) -> int:
        if parent is not None and not (0 <= int(parent) < len(self._entities)):
            raise ValueError(f"parent node {parent} does not exist yet")
        self._entities.append(PrefabEntity(parent=None if parent is None else int(parent), element=element))
        return len(self._entities) - 1

    def entity(self, index: int) -> PrefabEntity:
        return self._entities[int(index)]

    def entities(self) -> list[PrefabEntity]:
        return list(self._entities)

    def cluster_nodes(self) -> list[tuple[int, Cluster]]:
        out: list[tuple[int, Cluster]] = []
        for i, ent in enumerate(self._entities):
            if ent.element is not None and ent.element.cluster is not None:
                out.append((i, ent.element.cluster))
        return out

    def renderable_nodes(self) -> list[tuple[int, PrefabEntity]]:
        return [(i, ent) for i, ent in enumerate(self._entities) if ent.element is not None and ent.element.is_renderable]

    def children_of(self, index: int) -> list[int]:
        return [i for i, ent in enumerate(self._entities) if ent.parent == int(index)]

    def to_payload(self) -> dict:
        nodes: list[dict] = []
        for ent in self._entities:
            node: dict = {"parent": ent.parent}
            el = ent.element
            if el is not None:
                data: dict = {}
                if el.cluster is not None:
                    data["cluster"] = {"id": int(el.cluster.id)}
                if el.texture is not None:
                    data["texture"] = {
                        "name": el.texture.name,
                        "strategy": el.texture.strategy.value,
                        "srgb": bool(el.texture.srgb),
                    }
                if el.mesh is not None:
                    data["mesh"] = el.mesh.to_rows()
                node["element"] = data
            else:
                node["element"] = None
            nodes.append(node)
        return {"schema": PREFAB_SCHEMA, "nodes": nodes}

    @staticmethod
    def from_payload(payload: dict, *, fallback: FallbackTexture | None) -> ScenePrefab:
        if not isinstance(payload, dict) or payload.get("schema") != PREFAB_SCHEMA:
            raise ValueError("Unknown prefab payload schema")
        nodes = payload.get("nodes")
        if not isinstance(nodes, list) or not nodes:
            raise ValueError("Prefab payload has no nodes")

        root = nodes[0]
        if not (isinstance(root, dict) and root.get("parent") is None and root.get("element") is None):
            raise ValueError("Prefab node 0 must be the empty root")

        prefab = ScenePrefab()
        for raw in nodes[1:]:
            if not isinstance(raw, dict):
                raise ValueError(f"Invalid prefab node: {raw!r}")
            parent = raw.get("parent")
            if parent is not None and not isinstance(parent, int):
                raise ValueError(f"Invalid parent index: {parent!r}")
            prefab.add(parent, _element_from_payload(raw.get("element"), fallback=fallback))
        return prefab


def _element_from_payload(raw, *, fallback: FallbackTexture | None) -> PrefabElement | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid prefab element: {raw!r}")
    unknown = set(raw) - _ELEMENT_FIELDS
    if unknown:
        raise ValueError(f"Unknown prefab element fields: {sorted(unknown)}")

    cluster = None
    c = raw.get("cluster")
    if c is not None:
        if not (isinstance(c, dict) and set(c) == {"id"} and isinstance(c.get("id"), int)):
            raise ValueError(f"Invalid cluster: {c!r}")
        cluster = Cluster(id=int(c["id"]))

    texture = None
    t = raw.get("texture")
    if t is not None:
        if not isinstance(t, dict):
            raise ValueError(f"Invalid texture: {t!r}")
        unknown = set(t) - _TEXTURE_FIELDS
        if unknown:
            raise ValueError(f"Unknown texture fields: {sorted(unknown)}")
        name = t.get("name")
        if not isinstance(name, str):
            raise ValueError("Texture reference needs a name")
        strategy = ResolveStrategy(t.get("strategy", ResolveStrategy.FALLBACK_ON_ERROR.value))
        texture = TextureRef(name=name, strategy=strategy, srgb=bool(t.get("srgb", True)), fallback=fallback)

    mesh = None
    m = raw.get("mesh")
    if m is not None:
        if not isinstance(m, list):
            raise ValueError("Mesh must be a list of vertex rows")
        mesh = MeshData.from_rows(m)

    return PrefabElement(cluster=cluster, texture=texture, mesh=mesh)
