"""Pure building blocks of the pipeline (no provider imports here)."""

from .models import (
    Frame,
    ExtractionUnit,
    SpriteLayout,
    ImageRef,
    ModelRef,
    ProbeResult,
    InferenceStatus,
    InferenceResult,
    CustomLabel,
    Detection,
    ShotWindow,
)
from .partition import partition_by_count, partition_by_time, time_windows_to_units
from .shot_aggregator import aggregate_shots
from .sprite import compute_layout, compose_sprite_sheet, grid_size

__all__ = [
    "Frame",
    "ExtractionUnit",
    "SpriteLayout",
    "ImageRef",
    "ModelRef",
    "ProbeResult",
    "InferenceStatus",
    "InferenceResult",
    "CustomLabel",
    "Detection",
    "ShotWindow",
    "partition_by_count",
    "partition_by_time",
    "time_windows_to_units",
    "aggregate_shots",
    "compute_layout",
    "compose_sprite_sheet",
    "grid_size",
]
