from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image
from panda3d.core import GeomNode, NodePath, Texture

from bspbatch.batching.builder import PrefabBuilder
from bspbatch.scene.panda_scene import CLUSTER_TAG, attach_prefab
from bspbatch.textures import TextureDirectory, TextureResolver, load_missing_texture
from bspbatch.world.model import Face, Leaf, Model, SurfaceFlags, Vertex, World, WorldTexture


def _tri(texture: int) -> Face:
    verts = tuple(
        Vertex(position=(float(i), 0.0, 0.0), normal=(0.0, 0.0, 1.0), surface_texcoord=(0.0, 0.0)) for i in range(3)
    )
    return Face(texture=texture, vertices=verts)


def _prefab():
    world = World(
        textures=(WorldTexture("brick"), WorldTexture("sky", flags=int(SurfaceFlags.SKY)), WorldTexture("crate")),
        faces=(_tri(0), _tri(1), _tri(2)),
        leaves=(Leaf(cluster=7, faces=(0, 1)),),
        models=(Model(faces=(2,)),),
    )
    return PrefabBuilder(TextureResolver(load_missing_texture())).build(world)


def test_attach_builds_cluster_and_model_nodes_with_fallback_textures() -> None:
    render = NodePath("render")
    root = attach_prefab(_prefab(), parent=render, name="demo")

    assert root.getParent() == render
    assert root.getP() == pytest.approx(90.0)
    children = list(root.getChildren())
    assert len(children) == 2

    clusters = [c for c in children if c.hasTag(CLUSTER_TAG)]
    assert len(clusters) == 1
    assert clusters[0].getTag(CLUSTER_TAG) == "7"
    assert clusters[0].getNumChildren() == 1

    brick = clusters[0].getChild(0)
    assert isinstance(brick.node(), GeomNode)
    assert brick.node().getNumGeoms() == 1
    assert brick.node().getGeom(0).getVertexData().getNumRows() == 3
    assert brick.getTexture().getName() == "missing"

    crate = [c for c in children if not c.hasTag(CLUSTER_TAG)][0]
    # Every missing name shares one placeholder texture.
    assert crate.getTexture() == brick.getTexture()


def test_attach_loads_textures_from_directory(tmp_path: Path) -> None:
    Image.new("RGBA", (2, 2), (200, 100, 50, 255)).save(tmp_path / "brick.png")
    root = attach_prefab(_prefab(), parent=NodePath("render"), loader=TextureDirectory(tmp_path), z_up=False)

    assert root.getP() == pytest.approx(0.0)
    cluster = [c for c in root.getChildren() if c.hasTag(CLUSTER_TAG)][0]
    tex = cluster.getChild(0).getTexture()
    assert tex.getName() == "brick"
    assert tex.getXSize() == 2
    assert tex.getFormat() == Texture.F_srgb_alpha
