from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from bspbatch.app_config import load_batch_config
from bspbatch.build_report import BuildReporter
from bspbatch.formats import BspFormat
from bspbatch.textures import TextureDirectory, TextureResolveError
from bspbatch.world.bsp_decode import WorldDecodeError

logger = logging.getLogger("bspbatch")


def _summary(prefab) -> dict:
    clusters: list[dict] = []
    for idx, cluster in prefab.cluster_nodes():
        batches = []
        for child in prefab.children_of(idx):
            el = prefab.entity(child).element
            if el is None or el.mesh is None:
                continue
            batches.append({"texture": el.texture.name if el.texture else None, "vertices": len(el.mesh)})
        clusters.append({"id": int(cluster.id), "batches": batches})

    models: list[dict] = []
    for _, ent in prefab.renderable_nodes():
        if ent.parent is not None:
            continue
        el = ent.element
        models.append({"texture": el.texture.name if el.texture else None, "vertices": len(el.mesh)})
    return {"clusters": clusters, "models": models}


def _missing_textures(prefab, textures: TextureDirectory | None) -> list[str]:
    names = sorted({ent.element.texture.name for _, ent in prefab.renderable_nodes() if ent.element.texture})
    if textures is None:
        return names
    missing: list[str] = []
    for n in names:
        try:
            textures.load(n)
        except TextureResolveError:
            missing.append(n)
    return missing


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bspbatch",
        description="Group a BSP world into per-cluster, per-texture render batches and print a JSON report.",
    )
    parser.add_argument("--bsp", required=True, help="Path to a BSP file readable by bsp_tool.")
    parser.add_argument("--config", default=None, help="Optional JSON config (see BatchConfig).")
    parser.add_argument("--texture-root", default=None, help="Directory that texture names resolve against.")
    parser.add_argument(
        "--merge-models",
        action="store_true",
        help="Batch all standalone models in one grouping pass instead of per model.",
    )
    parser.add_argument(
        "--include-world-model",
        action="store_true",
        help="Also batch model 0 as a standalone model (its faces are normally reached via clusters).",
    )
    parser.add_argument(
        "--check-textures",
        action="store_true",
        help="Resolve every referenced texture and list the ones that would use the fallback image.",
    )
    parser.add_argument(
        "--assemble",
        action="store_true",
        help="Also instantiate the prefab into an offscreen Panda3D scene graph (timed as the assemble stage).",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
    args = parser.parse_args(argv)

    cfg = load_batch_config(Path(args.config) if args.config else None)
    if args.texture_root:
        cfg = replace(cfg, texture_root=str(args.texture_root))
    if args.merge_models:
        cfg = replace(cfg, merge_models=True)
    if args.include_world_model:
        cfg = replace(cfg, include_world_model=True)

    level = str(args.log_level or cfg.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="[%(levelname)s] %(name)s: %(message)s")

    bsp_path = Path(args.bsp)
    report = BuildReporter()
    report.begin(source=str(bsp_path))
    fmt = BspFormat(cfg, report=report)
    try:
        prefab = fmt.load_prefab(bsp_path)
    except WorldDecodeError as exc:
        logger.error("%s", exc)
        return 1

    textures = TextureDirectory(Path(cfg.texture_root), exts=cfg.texture_exts) if cfg.texture_root else None

    if args.assemble:
        from panda3d.core import NodePath

        from bspbatch.scene.panda_scene import attach_prefab

        attach_prefab(prefab, parent=NodePath("render"), loader=textures, name=bsp_path.stem, report=report)

    out: dict = {"report": report.as_payload(), **_summary(prefab)}
    if args.check_textures:
        out["missing_textures"] = _missing_textures(prefab, textures)
    print(json.dumps(out, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
