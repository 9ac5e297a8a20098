from __future__ import annotations

import logging

from bspbatch.build_report import DROP_INVALID_TEXTURE, DROP_NOT_DRAWABLE, BuildReporter
from bspbatch.world.model import Face, World, WorldTexture

logger = logging.getLogger(__name__)


def drawable_texture(
    world: World,
    texture_index: int,
    *,
    report: BuildReporter | None = None,
    face_count: int = 1,
) -> WorldTexture | None:
    """
    Return the texture for `texture_index` when its faces should produce geometry.

    Unknown indices and sky/trigger/clip-style textures both return None; neither is an error.
    """
    tex = world.texture(texture_index)
    if tex is None:
        logger.debug("Dropping faces with unknown texture index %d", int(texture_index))
        if report is not None:
            report.count_dropped_face(DROP_INVALID_TEXTURE, count=face_count)
        return None
    if not tex.should_draw():
        logger.debug("Dropping faces with non-drawable texture %s", tex.name)
        if report is not None:
            report.count_dropped_face(DROP_NOT_DRAWABLE, count=face_count)
        return None
    return tex


def face_contributes(world: World, face: Face) -> bool:
    return drawable_texture(world, face.texture) is not None
