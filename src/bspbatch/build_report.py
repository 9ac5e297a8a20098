from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator

BUILD_STAGE_DECODE = "decode"
BUILD_STAGE_CLUSTER_BATCH = "cluster_batch"
BUILD_STAGE_MODEL_BATCH = "model_batch"
BUILD_STAGE_ASSEMBLE = "assemble"

BUILD_STAGE_ORDER: tuple[str, ...] = (
    BUILD_STAGE_DECODE,
    BUILD_STAGE_CLUSTER_BATCH,
    BUILD_STAGE_MODEL_BATCH,
    BUILD_STAGE_ASSEMBLE,
)

DROP_INVALID_TEXTURE = "invalid_texture"
DROP_NOT_DRAWABLE = "not_drawable"

BUILD_REPORT_SCHEMA = "bspbatch.build_report.v1"


def _now_iso_utc() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class BuildReportState:
    source: str = ""
    stage_ms: dict[str, float] = field(default_factory=lambda: {name: 0.0 for name in BUILD_STAGE_ORDER})
    dropped_faces: dict[str, int] = field(
        default_factory=lambda: {DROP_INVALID_TEXTURE: 0, DROP_NOT_DRAWABLE: 0}
    )
    clusters: int = 0
    cluster_batches: int = 0
    model_batches: int = 0
    vertices: int = 0
    textures: set[str] = field(default_factory=set)


class BuildReporter:
    """
    Timing and counters for one world-to-prefab build.

    The reporter never influences the build; it only records what happened.
    """

    def __init__(self, *, time_fn: Callable[[], float] | None = None) -> None:
        self._time_fn = time_fn if callable(time_fn) else time.perf_counter
        self._state = BuildReportState()

    def begin(self, *, source: str | None) -> None:
        self._state = BuildReportState(source=str(source or ""))

    @contextmanager
    def stage(self, stage_name: str) -> Iterator[None]:
        if stage_name not in self._state.stage_ms:
            self._state.stage_ms[stage_name] = 0.0
        t0 = float(self._time_fn())
        try:
            yield
        finally:
            elapsed_ms = max(0.0, (float(self._time_fn()) - t0) * 1000.0)
            self._state.stage_ms[stage_name] = float(self._state.stage_ms.get(stage_name, 0.0)) + elapsed_ms

    def stage_ms(self, stage_name: str) -> float:
        return float(self._state.stage_ms.get(stage_name, 0.0))

    def count_dropped_face(self, reason: str, *, count: int = 1) -> None:
        self._state.dropped_faces[reason] = int(self._state.dropped_faces.get(reason, 0)) + max(0, int(count))

    def dropped_faces(self, reason: str) -> int:
        return int(self._state.dropped_faces.get(reason, 0))

    def count_cluster(self) -> None:
        self._state.clusters += 1

    def count_batch(self, *, cluster: int | None, texture_name: str, vertices: int) -> None:
        if cluster is None:
            self._state.model_batches += 1
        else:
            self._state.cluster_batches += 1
        self._state.vertices += int(vertices)
        self._state.textures.add(str(texture_name))

    def as_payload(self) -> dict[str, object]:
        s = self._state
        return {
            "event": "world_build_report",
            "schema": BUILD_REPORT_SCHEMA,
            "timestamp_utc": _now_iso_utc(),
            "source": s.source,
            "stage_order": list(BUILD_STAGE_ORDER),
            "stages_ms": {name: float(s.stage_ms.get(name, 0.0)) for name in BUILD_STAGE_ORDER},
            "clusters": int(s.clusters),
            "cluster_batches": int(s.cluster_batches),
            "model_batches": int(s.model_batches),
            "vertices": int(s.vertices),
            "textures": sorted(s.textures),
            "dropped_faces": dict(s.dropped_faces),
        }
