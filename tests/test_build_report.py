from __future__ import annotations

import pytest

from bspbatch.build_report import (
    BUILD_STAGE_CLUSTER_BATCH,
    BUILD_STAGE_DECODE,
    BUILD_STAGE_ORDER,
    DROP_INVALID_TEXTURE,
    DROP_NOT_DRAWABLE,
    BuildReporter,
)


class _Clock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


def test_stage_times_accumulate_per_stage() -> None:
    clock = _Clock()
    rep = BuildReporter(time_fn=clock)
    rep.begin(source="maps/demo.bsp")

    with rep.stage(BUILD_STAGE_DECODE):
        clock.t += 0.25
    with rep.stage(BUILD_STAGE_CLUSTER_BATCH):
        clock.t += 0.1
    with rep.stage(BUILD_STAGE_CLUSTER_BATCH):
        clock.t += 0.05

    assert rep.stage_ms(BUILD_STAGE_DECODE) == pytest.approx(250.0)
    assert rep.stage_ms(BUILD_STAGE_CLUSTER_BATCH) == pytest.approx(150.0)

    payload = rep.as_payload()
    assert payload["source"] == "maps/demo.bsp"
    assert payload["stage_order"] == list(BUILD_STAGE_ORDER)
    assert payload["stages_ms"]["assemble"] == 0.0


def test_stage_time_is_recorded_when_the_block_raises() -> None:
    clock = _Clock()
    rep = BuildReporter(time_fn=clock)
    with pytest.raises(RuntimeError):
        with rep.stage(BUILD_STAGE_DECODE):
            clock.t += 1.0
            raise RuntimeError("boom")
    assert rep.stage_ms(BUILD_STAGE_DECODE) == pytest.approx(1000.0)


def test_counters_and_reset_on_begin() -> None:
    rep = BuildReporter()
    rep.count_cluster()
    rep.count_batch(cluster=3, texture_name="brick", vertices=6)
    rep.count_batch(cluster=None, texture_name="crate", vertices=3)
    rep.count_batch(cluster=4, texture_name="brick", vertices=3)
    rep.count_dropped_face(DROP_NOT_DRAWABLE, count=4)
    rep.count_dropped_face(DROP_INVALID_TEXTURE)

    payload = rep.as_payload()
    assert payload["clusters"] == 1
    assert payload["cluster_batches"] == 2
    assert payload["model_batches"] == 1
    assert payload["vertices"] == 12
    assert payload["textures"] == ["brick", "crate"]
    assert payload["dropped_faces"] == {DROP_INVALID_TEXTURE: 1, DROP_NOT_DRAWABLE: 4}

    rep.begin(source="next.bsp")
    assert rep.as_payload()["clusters"] == 0
    assert rep.dropped_faces(DROP_NOT_DRAWABLE) == 0
