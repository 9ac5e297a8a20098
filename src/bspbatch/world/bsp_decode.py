"""Build a :class:`World` from a BSP file decoded by ``bsp_tool``.

Two branch families are understood:

- Quake 3 style files carry a ``TEXTURES`` lump with surface flags, a per-leaf
  ``cluster`` field and triangle indices for every face.
- GoldSrc/Quake style files only carry miptex names, so draw eligibility is
  derived from well-known tool texture names and every visleaf is its own cluster.

Everything is copied into plain dataclasses so the decoded file can be dropped
as soon as the World exists.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import bsp_tool

from bspbatch.world.model import Face, Leaf, Model, SurfaceFlags, Vertex, World, WorldTexture

logger = logging.getLogger(__name__)

NO_RENDER_TEXTURES = {
    "aaatrigger",
    "clip",
    "hint",
    "null",
    "nodraw",
    "origin",
    "playerclip",
    "skip",
    "trigger",
}

SKY_TEXTURES = {"sky"}


class WorldDecodeError(RuntimeError):
    pass


def _decode_name(name) -> str:
    if isinstance(name, (bytes, bytearray)):
        name = bytes(name)
        if b"\x00" in name:
            name = name.split(b"\x00", 1)[0]
        return name.decode("ascii", errors="ignore").strip()
    if isinstance(name, str):
        return name.split("\x00", 1)[0].strip()
    return ""


def _first_int(obj, names: tuple[str, ...], default: int = 0) -> int:
    for n in names:
        v = getattr(obj, n, None)
        if v is None:
            continue
        try:
            return int(v)
        except (TypeError, ValueError):
            continue
    return int(default)


def _vec3(v) -> tuple[float, float, float]:
    if v is None:
        return (0.0, 0.0, 0.0)
    if hasattr(v, "x"):
        return (float(v.x), float(v.y), float(v.z))
    return (float(v[0]), float(v[1]), float(v[2]))


def _vec2(v) -> tuple[float, float]:
    if v is None:
        return (0.0, 0.0)
    if hasattr(v, "u"):
        return (float(v.u), float(v.v))
    if hasattr(v, "x"):
        return (float(v.x), float(v.y))
    return (float(v[0]), float(v[1]))


def _texcoord(vert) -> tuple[float, float]:
    # Quake 3 vertices store (texture, lightmap) uv pairs; bsp_tool meshes store a list of uv sets.
    uv = getattr(vert, "uv", None)
    if uv is None:
        return (0.0, 0.0)
    tex = getattr(uv, "texture", None)
    if tex is not None:
        return _vec2(tex)
    if hasattr(uv, "u") or hasattr(uv, "x"):
        return _vec2(uv)
    try:
        return _vec2(uv[0])
    except (IndexError, TypeError):
        return (0.0, 0.0)


def _vertex(vert) -> Vertex:
    return Vertex(
        position=_vec3(getattr(vert, "position", None)),
        normal=_vec3(getattr(vert, "normal", None)),
        surface_texcoord=_texcoord(vert),
    )


def goldsrc_texture_flags(name: str) -> int:
    low = name.strip().lower()
    if low in SKY_TEXTURES:
        return int(SurfaceFlags.SKY)
    if low in NO_RENDER_TEXTURES:
        return int(SurfaceFlags.NODRAW)
    return 0


def _is_quake3_family(bsp) -> bool:
    leaves = getattr(bsp, "LEAVES", None) or []
    if getattr(bsp, "TEXTURES", None) is None or not len(leaves):
        return False
    return hasattr(leaves[0], "cluster")


def _surface_flags(t) -> int:
    # bsp_tool maps Quake 3 flags to a (surface, contents) pair.
    flags = getattr(t, "flags", None)
    surface = getattr(flags, "surface", None)
    if surface is not None:
        return int(surface)
    return _first_int(t, ("flags",))


def _quake3_textures(bsp) -> list[WorldTexture]:
    out: list[WorldTexture] = []
    for t in getattr(bsp, "TEXTURES", None) or []:
        out.append(WorldTexture(name=_decode_name(getattr(t, "name", "")), flags=_surface_flags(t)))
    return out


def _goldsrc_textures(bsp) -> list[WorldTexture]:
    out: list[WorldTexture] = []
    for entry in getattr(bsp, "MIP_TEXTURES", None) or []:
        # GoldSrc: each element looks like (MipTexture(...), [mip0..mip3 bytes]).
        mt = entry[0] if isinstance(entry, tuple) and entry else entry
        name = _decode_name(getattr(mt, "name", mt))
        out.append(WorldTexture(name=name, flags=goldsrc_texture_flags(name)))
    return out


def _face_type_name(face) -> str:
    kind = getattr(face, "type", None)
    name = getattr(kind, "name", None)
    if isinstance(name, str):
        return name
    return "PATCH" if kind == 2 else ""


def _quake3_face(bsp, face) -> Face:
    tex = _first_int(face, ("texture", "shader"), -1)
    verts = getattr(bsp, "VERTICES", None)
    indices = getattr(bsp, "INDICES", None)
    if indices is None:
        indices = getattr(bsp, "MESH_VERTICES", None)
    if verts is None or indices is None:
        return Face(texture=tex)

    first_vertex = _first_int(face, ("first_vertex",))
    first_index = _first_int(face, ("first_index", "first_mesh_vertex"))
    num_indices = _first_int(face, ("num_indices", "num_mesh_vertices"))
    if num_indices <= 0 and _face_type_name(face) == "PATCH":
        # Bezier patches carry control points only; tessellation is not done here.
        logger.debug("Skipping curved patch face (texture %d)", tex)
        return Face(texture=tex)
    out: list[Vertex] = []
    try:
        for i in range(first_index, first_index + num_indices):
            out.append(_vertex(verts[first_vertex + int(indices[i])]))
    except (IndexError, TypeError, ValueError):
        # Broken index range: the face keeps its texture but contributes no geometry.
        return Face(texture=tex)
    return Face(texture=tex, vertices=tuple(out))


def _goldsrc_face(bsp, face, face_idx: int) -> Face:
    tex = -1
    try:
        texinfo = bsp.TEXTURE_INFO[int(face.texture_info)]
        tex = int(getattr(texinfo, "mip_texture"))
    except (AttributeError, IndexError, TypeError, ValueError):
        tex = -1

    try:
        mesh = bsp.face_mesh(int(face_idx))
    except Exception as exc:
        logger.debug("face_mesh(%d) failed: %s", face_idx, exc)
        return Face(texture=tex)

    out: list[Vertex] = []
    for poly in getattr(mesh, "polygons", None) or []:
        verts = list(getattr(poly, "vertices", None) or [])
        if len(verts) < 3:
            continue
        # Fan triangulation keeps the source winding.
        for i in range(1, len(verts) - 1):
            out.append(_vertex(verts[0]))
            out.append(_vertex(verts[i]))
            out.append(_vertex(verts[i + 1]))
    return Face(texture=tex, vertices=tuple(out))


def _world_visleafs(bsp) -> int:
    models = getattr(bsp, "MODELS", None) or []
    if not len(models):
        return -1
    # GoldSrc calls it visleaves, Quake num_leaves; both exclude the solid leaf.
    return _first_int(models[0], ("visleaves", "visleafs", "num_leaves"), -1)


def world_from_bsp(bsp, *, include_world_model: bool = False, source: str = "") -> World:
    quake3 = _is_quake3_family(bsp)
    textures = _quake3_textures(bsp) if quake3 else _goldsrc_textures(bsp)

    faces: list[Face] = []
    for face_idx, face in enumerate(getattr(bsp, "FACES", None) or []):
        faces.append(_quake3_face(bsp, face) if quake3 else _goldsrc_face(bsp, face, face_idx))

    leaf_faces_lump = [int(x) for x in (getattr(bsp, "LEAF_FACES", None) or [])]
    world_visleafs = -1 if quake3 else _world_visleafs(bsp)
    leaves: list[Leaf] = []
    for leaf_idx, lf in enumerate(getattr(bsp, "LEAVES", None) or []):
        if quake3:
            cluster = _first_int(lf, ("cluster",), -1)
        else:
            # Leaf 0 is the shared solid leaf; visleafs start at 1. Leaves past the
            # world model's visleafs belong to brush submodels and stay unclustered.
            cluster = int(leaf_idx) - 1
            if leaf_idx == 0 or (world_visleafs >= 0 and leaf_idx > world_visleafs):
                cluster = -1
        first = _first_int(lf, ("first_leaf_face",))
        count = _first_int(lf, ("num_leaf_faces",))
        if first < 0 or count <= 0:
            leaves.append(Leaf(cluster=cluster))
            continue
        end = min(first + count, len(leaf_faces_lump))
        leaves.append(Leaf(cluster=cluster, faces=tuple(leaf_faces_lump[first:end])))

    clustered = any(int(lf.cluster) >= 0 for lf in leaves)
    models: list[Model] = []
    for model_idx, m in enumerate(getattr(bsp, "MODELS", None) or []):
        if model_idx == 0 and clustered and not include_world_model:
            # Model 0 is the world itself; its faces are already reachable through leaves.
            continue
        first = _first_int(m, ("first_face",))
        num = _first_int(m, ("num_faces",))
        if first < 0 or num <= 0:
            models.append(Model())
            continue
        models.append(Model(faces=tuple(range(first, first + num))))

    logger.info(
        "Decoded %s: %d textures, %d faces, %d leaves, %d models (%s)",
        source or "bsp",
        len(textures),
        len(faces),
        len(leaves),
        len(models),
        "quake3" if quake3 else "goldsrc",
    )
    return World(
        textures=tuple(textures),
        faces=tuple(faces),
        leaves=tuple(leaves),
        models=tuple(models),
        source=source,
    )


def load_world(path: str | Path, *, include_world_model: bool = False) -> World:
    """
    Decode a BSP file from disk.

    Any decoder failure surfaces as :class:`WorldDecodeError`; no partial World is returned.
    """

    path = Path(path)
    try:
        bsp = bsp_tool.load_bsp(str(path))
    except Exception as exc:
        raise WorldDecodeError(f"failed to decode {path}: {exc}") from exc
    try:
        return world_from_bsp(bsp, include_world_model=include_world_model, source=str(path))
    except Exception as exc:
        raise WorldDecodeError(f"unsupported BSP layout in {path}: {exc}") from exc


def decode_world(data: bytes, *, include_world_model: bool = False, name: str = "world.bsp") -> World:
    # bsp_tool reads from paths only; stage the bytes in a scratch dir.
    with tempfile.TemporaryDirectory(prefix="bspbatch-") as tmp:
        p = Path(tmp) / (Path(name).name or "world.bsp")
        p.write_bytes(bytes(data))
        return load_world(p, include_world_model=include_world_model)
