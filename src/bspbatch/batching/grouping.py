from __future__ import annotations

from bspbatch.world.model import Face, World


def _texture_sort_key(world: World, face: Face) -> tuple[str, int]:
    tex = world.texture(face.texture)
    return (tex.name if tex is not None else "", int(face.texture))


def sort_faces_by_texture(world: World, faces: list[Face]) -> list[Face]:
    """
    Stable sort by (texture name, texture index).

    Faces sharing a texture index become contiguous; ties keep their input order.
    Unknown indices sort first under an empty name.
    """
    return sorted(faces, key=lambda face: _texture_sort_key(world, face))


def partition_by_texture(faces: list[Face]) -> list[tuple[int, list[Face]]]:
    """Split an already sorted face list into maximal runs of equal texture index."""
    runs: list[tuple[int, list[Face]]] = []
    for face in faces:
        tex = int(face.texture)
        if runs and runs[-1][0] == tex:
            runs[-1][1].append(face)
        else:
            runs.append((tex, [face]))
    return runs
