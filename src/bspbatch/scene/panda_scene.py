from __future__ import annotations

import logging
from contextlib import nullcontext

from panda3d.core import (
    Geom,
    GeomNode,
    GeomTriangles,
    GeomVertexData,
    GeomVertexFormat,
    GeomVertexWriter,
    NodePath,
    PandaNode,
    Texture,
)

from bspbatch.batching.prefab import PrefabElement, ScenePrefab
from bspbatch.batching.transcode import MeshData
from bspbatch.build_report import BUILD_STAGE_ASSEMBLE, BuildReporter
from bspbatch.textures import TextureImage, TextureLoader, TextureRef, TextureResolveError

logger = logging.getLogger(__name__)

CLUSTER_TAG = "cluster"
TEXTURE_TAG = "texture"


class _NoTextureSource:
    def load(self, name: str) -> TextureImage:
        raise TextureResolveError(f"no texture source configured for {name}")


def make_panda_texture(image: TextureImage, *, srgb: bool = True) -> Texture:
    tex = Texture(image.name)
    fmt = Texture.F_srgb_alpha if srgb else Texture.F_rgba8
    tex.setup2dTexture(int(image.width), int(image.height), Texture.T_unsigned_byte, fmt)
    # Panda3D RAM images start at the bottom row.
    stride = int(image.width) * 4
    rows = [image.rgba[y * stride : (y + 1) * stride] for y in range(int(image.height))]
    tex.setRamImageAs(b"".join(reversed(rows)), "RGBA")
    tex.setWrapU(Texture.WM_repeat)
    tex.setWrapV(Texture.WM_repeat)
    if image.is_fallback:
        tex.setMinfilter(Texture.FT_nearest)
        tex.setMagfilter(Texture.FT_nearest)
    else:
        tex.setMinfilter(Texture.FT_linear_mipmap_linear)
        tex.setMagfilter(Texture.FT_linear)
    return tex


def make_mesh_geom_node(name: str, mesh: MeshData) -> GeomNode:
    vdata = GeomVertexData(name, GeomVertexFormat.getV3n3t2(), Geom.UHStatic)
    vdata.setNumRows(len(mesh))
    vw = GeomVertexWriter(vdata, "vertex")
    nw = GeomVertexWriter(vdata, "normal")
    tw = GeomVertexWriter(vdata, "texcoord")
    for v in mesh.vertices:
        vw.addData3f(*v.position)
        nw.addData3f(*v.normal)
        tw.addData2f(*v.tex_coord)

    prim = GeomTriangles(Geom.UHStatic)
    # Vertex lists are plain triangle lists; a trailing partial triangle is ignored.
    usable = len(mesh) - (len(mesh) % 3)
    for i in range(0, usable, 3):
        prim.addVertices(i, i + 1, i + 2)

    geom = Geom(vdata)
    geom.addPrimitive(prim)
    node = GeomNode(name)
    node.addGeom(geom)
    return node


class _TextureCache:
    def __init__(self, loader: TextureLoader) -> None:
        self._loader = loader
        self._by_key: dict[tuple[str, str, bool], Texture] = {}
        self._fallback: dict[bool, Texture] = {}

    def get(self, ref: TextureRef) -> Texture:
        key = (ref.name.casefold(), ref.strategy.value, bool(ref.srgb))
        tex = self._by_key.get(key)
        if tex is not None:
            return tex
        image = ref.resolve(self._loader)
        if image.is_fallback:
            # One shared Panda texture for every missing name.
            tex = self._fallback.get(bool(ref.srgb))
            if tex is None:
                tex = make_panda_texture(image, srgb=ref.srgb)
                self._fallback[bool(ref.srgb)] = tex
        else:
            tex = make_panda_texture(image, srgb=ref.srgb)
        self._by_key[key] = tex
        return tex


def attach_prefab(
    prefab: ScenePrefab,
    *,
    parent: NodePath,
    loader: TextureLoader | None = None,
    name: str = "bsp",
    z_up: bool = True,
    report: BuildReporter | None = None,
) -> NodePath:
    """
    Instantiate a prefab under `parent` and return the new root NodePath.

    Cluster nodes become plain PandaNodes tagged with their cluster id; renderable
    nodes become GeomNodes with their texture applied. Standalone model batches are
    attached directly to the returned root.
    """
    with report.stage(BUILD_STAGE_ASSEMBLE) if report is not None else nullcontext():
        return _attach(prefab, parent=parent, loader=loader, name=name, z_up=z_up)


def _attach(prefab: ScenePrefab, *, parent: NodePath, loader: TextureLoader | None, name: str, z_up: bool) -> NodePath:
    root = parent.attachNewNode(PandaNode(f"{name}-root"))
    if z_up:
        # Batches are Y-up; this pitch maps them back onto Panda3D's Z-up axes.
        root.setP(90)

    textures = _TextureCache(loader if loader is not None else _NoTextureSource())
    nodepaths: dict[int, NodePath] = {ScenePrefab.ROOT: root}
    geoms = 0
    for idx, ent in enumerate(prefab.entities()):
        if idx == ScenePrefab.ROOT:
            continue
        host = nodepaths[ent.parent] if ent.parent is not None else root
        np = host.attachNewNode(_make_node(name, idx, ent.element))
        el = ent.element
        if el is not None:
            if el.cluster is not None:
                np.setTag(CLUSTER_TAG, str(int(el.cluster.id)))
            if el.texture is not None:
                np.setTag(TEXTURE_TAG, el.texture.name)
                if el.mesh is not None:
                    np.setTexture(textures.get(el.texture), 1)
            if el.mesh is not None:
                geoms += 1
        nodepaths[idx] = np

    logger.info("Attached %s: %d nodes, %d geoms", name, len(prefab) - 1, geoms)
    return root


def _make_node(name: str, idx: int, el: PrefabElement | None) -> PandaNode:
    if el is not None and el.mesh is not None:
        label = el.texture.name if el.texture is not None else str(idx)
        return make_mesh_geom_node(f"{name}-geom-{idx}-{label}", el.mesh)
    if el is not None and el.cluster is not None:
        return PandaNode(f"{name}-cluster-{int(el.cluster.id)}")
    return PandaNode(f"{name}-node-{idx}")
