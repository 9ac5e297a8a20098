from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag


class SurfaceFlags(IntFlag):
    """Quake 3 surface bits that matter for draw eligibility."""

    NONE = 0
    SKY = 0x4
    NODRAW = 0x80
    HINT = 0x100
    SKIP = 0x200


NO_DRAW_SURFACE_FLAGS = SurfaceFlags.SKY | SurfaceFlags.NODRAW | SurfaceFlags.HINT | SurfaceFlags.SKIP


@dataclass(frozen=True)
class Vertex:
    # Source convention (Z up).
    position: tuple[float, float, float]
    normal: tuple[float, float, float]
    surface_texcoord: tuple[float, float]


@dataclass(frozen=True)
class WorldTexture:
    name: str
    # Raw surface flags; unknown bits are kept as-is.
    flags: int = 0

    def should_draw(self) -> bool:
        return not (int(self.flags) & int(NO_DRAW_SURFACE_FLAGS))


@dataclass(frozen=True)
class Face:
    # Index into World.textures; may be out of range.
    texture: int
    vertices: tuple[Vertex, ...] = ()


@dataclass(frozen=True)
class Leaf:
    # cluster < 0 means "not part of any visibility cluster".
    cluster: int
    # Indices into World.faces.
    faces: tuple[int, ...] = ()


@dataclass(frozen=True)
class Model:
    faces: tuple[int, ...] = ()


@dataclass(frozen=True)
class World:
    """
    Decoded, read-only level geometry.

    Leaves and models reference faces by index so the same face can be shared by
    several leaves (common in BSP files) without copying vertex data.
    """

    textures: tuple[WorldTexture, ...] = ()
    faces: tuple[Face, ...] = ()
    leaves: tuple[Leaf, ...] = ()
    models: tuple[Model, ...] = ()
    source: str = field(default="", compare=False)

    def texture(self, index: int) -> WorldTexture | None:
        index = int(index)
        if index < 0 or index >= len(self.textures):
            return None
        return self.textures[index]

    def clusters(self) -> list[tuple[int, list[Leaf]]]:
        """
        Group leaves by cluster id.

        Ids are returned ascending; leaves inside a cluster keep their world order.
        """

        by_id: dict[int, list[Leaf]] = {}
        for leaf in self.leaves:
            cid = int(leaf.cluster)
            if cid < 0:
                continue
            by_id.setdefault(cid, []).append(leaf)
        return [(cid, by_id[cid]) for cid in sorted(by_id)]

    def leaf_faces(self, leaf: Leaf) -> list[Face]:
        return self._faces_at(leaf.faces)

    def model_faces(self, model: Model) -> list[Face]:
        return self._faces_at(model.faces)

    def _faces_at(self, indices: tuple[int, ...]) -> list[Face]:
        out: list[Face] = []
        n = len(self.faces)
        for i in indices:
            i = int(i)
            if 0 <= i < n:
                out.append(self.faces[i])
        return out
