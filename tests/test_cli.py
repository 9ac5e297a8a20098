from __future__ import annotations

import json
from pathlib import Path

from PIL import Image

from bspbatch.__main__ import main
from bspbatch.world.model import Face, Leaf, Model, SurfaceFlags, Vertex, World, WorldTexture


def _world() -> World:
    verts = tuple(Vertex(position=(float(i), 0.0, 0.0), normal=(0.0, 0.0, 1.0), surface_texcoord=(0.0, 0.0)) for i in range(3))
    return World(
        textures=(WorldTexture("brick"), WorldTexture("sky", flags=int(SurfaceFlags.SKY)), WorldTexture("crate")),
        faces=(Face(texture=0, vertices=verts), Face(texture=1, vertices=verts), Face(texture=2, vertices=verts)),
        leaves=(Leaf(cluster=5, faces=(0, 1)),),
        models=(Model(faces=(2,)),),
        source="demo.bsp",
    )


def _stub_loader(monkeypatch) -> None:
    monkeypatch.setattr("bspbatch.formats.load_world", lambda path, include_world_model=False: _world())


def test_missing_bsp_exits_nonzero(tmp_path: Path) -> None:
    assert main(["--bsp", str(tmp_path / "none.bsp"), "--log-level", "ERROR"]) == 1


def test_prints_cluster_and_model_batches(monkeypatch, capsys, tmp_path: Path) -> None:
    _stub_loader(monkeypatch)
    assert main(["--bsp", str(tmp_path / "demo.bsp")]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["clusters"] == [{"id": 5, "batches": [{"texture": "brick", "vertices": 3}]}]
    assert out["models"] == [{"texture": "crate", "vertices": 3}]
    assert out["report"]["dropped_faces"]["not_drawable"] == 1
    assert "missing_textures" not in out


def test_check_textures_lists_names_without_files(monkeypatch, capsys, tmp_path: Path) -> None:
    _stub_loader(monkeypatch)
    tex_root = tmp_path / "textures"
    tex_root.mkdir()
    Image.new("RGBA", (2, 2), (1, 2, 3, 255)).save(tex_root / "brick.png")

    rc = main(["--bsp", str(tmp_path / "demo.bsp"), "--texture-root", str(tex_root), "--check-textures", "--assemble"])
    assert rc == 0

    out = json.loads(capsys.readouterr().out)
    assert out["missing_textures"] == ["crate"]
    assert out["report"]["stages_ms"]["assemble"] >= 0.0
