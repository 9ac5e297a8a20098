from __future__ import annotations

from bspbatch.batching.builder import PrefabBuilder, batch_faces
from bspbatch.batching.grouping import partition_by_texture, sort_faces_by_texture
from bspbatch.build_report import DROP_INVALID_TEXTURE, DROP_NOT_DRAWABLE, BuildReporter
from bspbatch.textures import FallbackTexture, TextureImage, TextureResolver
from bspbatch.world.model import Face, Leaf, SurfaceFlags, Vertex, World, WorldTexture


def _resolver() -> TextureResolver:
    img = TextureImage(name="missing", width=1, height=1, rgba=b"\xff\x00\xff\xff", is_fallback=True)
    return TextureResolver(FallbackTexture(image=img))


def _tri(texture: int, x: float = 0.0) -> Face:
    verts = tuple(
        Vertex(position=(x + i, 10.0 + i, 20.0 + i), normal=(0.0, 0.0, 1.0), surface_texcoord=(float(i), 0.0))
        for i in range(3)
    )
    return Face(texture=texture, vertices=verts)


def test_single_cluster_drops_sky_and_remaps_brick() -> None:
    world = World(
        textures=(WorldTexture("brick"), WorldTexture("sky", flags=int(SurfaceFlags.SKY))),
        faces=(_tri(0), _tri(1)),
        leaves=(Leaf(cluster=7, faces=(0, 1)),),
    )
    prefab = PrefabBuilder(_resolver()).build(world)

    clusters = prefab.cluster_nodes()
    assert [c.id for _, c in clusters] == [7]
    cluster_idx = clusters[0][0]
    assert prefab.entity(cluster_idx).parent == prefab.ROOT

    children = prefab.children_of(cluster_idx)
    assert len(children) == 1
    el = prefab.entity(children[0]).element
    assert el.texture.name == "brick"
    assert len(el.mesh) == 3
    assert [v.position for v in el.mesh.vertices] == [(0.0, 20.0, -10.0), (1.0, 21.0, -11.0), (2.0, 22.0, -12.0)]
    assert all(v.normal == (0.0, 1.0, -0.0) for v in el.mesh.vertices)
    assert len(prefab.renderable_nodes()) == 1


def test_grouping_is_by_texture_identity_not_position() -> None:
    world = World(textures=(WorldTexture("a"), WorldTexture("b")))
    faces = [_tri(0, x=0.0), _tri(0, x=100.0), _tri(1, x=200.0), _tri(0, x=300.0)]

    runs = partition_by_texture(sort_faces_by_texture(world, faces))
    assert [(tex, len(run)) for tex, run in runs] == [(0, 3), (1, 1)]

    batches = batch_faces(world, faces, cluster=1)
    assert [(b.texture.name, len(b.mesh)) for b in batches] == [("a", 9), ("b", 3)]
    # Stable: input face order is kept inside the group.
    assert [v.position[0] for v in batches[0].mesh.vertices[::3]] == [0.0, 100.0, 300.0]


def test_groups_are_emitted_in_texture_name_order() -> None:
    world = World(textures=(WorldTexture("zinc"), WorldTexture("alpha")))
    batches = batch_faces(world, [_tri(0), _tri(1)], cluster=None)
    assert [b.texture.name for b in batches] == ["alpha", "zinc"]


def test_invalid_and_ineligible_faces_never_produce_geometry() -> None:
    world = World(
        textures=(WorldTexture("wall"), WorldTexture("clip", flags=int(SurfaceFlags.NODRAW))),
        faces=(_tri(0), _tri(42), _tri(-3), _tri(1)),
        leaves=(Leaf(cluster=0, faces=(0, 1, 2, 3)),),
    )
    report = BuildReporter()
    prefab = PrefabBuilder(_resolver(), report=report).build(world)

    names = [ent.element.texture.name for _, ent in prefab.renderable_nodes()]
    assert names == ["wall"]
    assert report.dropped_faces(DROP_INVALID_TEXTURE) == 2
    assert report.dropped_faces(DROP_NOT_DRAWABLE) == 1


def test_every_cluster_gets_a_node_even_without_geometry() -> None:
    world = World(
        textures=(WorldTexture("sky", flags=int(SurfaceFlags.SKY)),),
        faces=(_tri(0),),
        leaves=(Leaf(cluster=3), Leaf(cluster=4, faces=(0,)), Leaf(cluster=3, faces=())),
    )
    prefab = PrefabBuilder(_resolver()).build(world)
    clusters = prefab.cluster_nodes()
    assert [c.id for _, c in clusters] == [3, 4]
    assert all(prefab.children_of(idx) == [] for idx, _ in clusters)
    assert prefab.renderable_nodes() == []


def test_faces_without_vertices_do_not_create_empty_nodes() -> None:
    world = World(
        textures=(WorldTexture("wall"),),
        faces=(Face(texture=0),),
        leaves=(Leaf(cluster=0, faces=(0,)),),
    )
    prefab = PrefabBuilder(_resolver()).build(world)
    assert len(prefab.cluster_nodes()) == 1
    assert prefab.renderable_nodes() == []


def test_cluster_nodes_precede_their_children() -> None:
    world = World(
        textures=(WorldTexture("a"), WorldTexture("b")),
        faces=(_tri(0), _tri(1)),
        leaves=(Leaf(cluster=1, faces=(0,)), Leaf(cluster=0, faces=(1, 0))),
    )
    prefab = PrefabBuilder(_resolver()).build(world)
    for idx, ent in prefab.renderable_nodes():
        assert ent.parent is not None and ent.parent < idx
        assert prefab.entity(ent.parent).element.cluster is not None


def test_building_twice_is_byte_identical() -> None:
    world = World(
        textures=(WorldTexture("a"), WorldTexture("b")),
        faces=(_tri(1, x=1.5), _tri(0, x=-2.0), _tri(1, x=3.25)),
        leaves=(Leaf(cluster=0, faces=(0, 1, 2)),),
    )
    first = PrefabBuilder(_resolver()).build(world)
    second = PrefabBuilder(_resolver()).build(world)
    assert first.to_payload() == second.to_payload()
    assert [e.element.mesh.to_bytes() for _, e in first.renderable_nodes()] == [
        e.element.mesh.to_bytes() for _, e in second.renderable_nodes()
    ]
