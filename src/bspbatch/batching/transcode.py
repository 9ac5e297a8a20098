from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable

from bspbatch.world.model import Face, Vertex

# px py pz nx ny nz u v, little-endian float32.
_VERTEX_STRUCT = struct.Struct("<8f")


@dataclass(frozen=True)
class PosNormTex:
    position: tuple[float, float, float]
    normal: tuple[float, float, float]
    tex_coord: tuple[float, float]


def remap_axes(v: tuple[float, float, float]) -> tuple[float, float, float]:
    # Source is Z-up; the render target is Y-up.
    x, y, z = v
    return (float(x), float(z), -float(y))


def transcode_vertex(vertex: Vertex) -> PosNormTex:
    u, v = vertex.surface_texcoord
    return PosNormTex(
        position=remap_axes(vertex.position),
        normal=remap_axes(vertex.normal),
        tex_coord=(float(u), float(v)),
    )


def transcode_faces(faces: Iterable[Face]) -> list[PosNormTex]:
    """Face order first, then each face's own vertex order."""
    return [transcode_vertex(vert) for face in faces for vert in face.vertices]


@dataclass(frozen=True)
class MeshData:
    vertices: tuple[PosNormTex, ...] = ()

    def __len__(self) -> int:
        return len(self.vertices)

    def to_bytes(self) -> bytes:
        out = bytearray()
        for vert in self.vertices:
            out += _VERTEX_STRUCT.pack(*vert.position, *vert.normal, *vert.tex_coord)
        return bytes(out)

    def to_rows(self) -> list[list[float]]:
        return [[*v.position, *v.normal, *v.tex_coord] for v in self.vertices]

    @staticmethod
    def from_rows(rows: list) -> MeshData:
        verts: list[PosNormTex] = []
        for row in rows:
            if not (isinstance(row, list) and len(row) == 8):
                raise ValueError(f"mesh vertex must have 8 components, got {row!r}")
            r = [float(x) for x in row]
            verts.append(PosNormTex(position=(r[0], r[1], r[2]), normal=(r[3], r[4], r[5]), tex_coord=(r[6], r[7])))
        return MeshData(vertices=tuple(verts))
