"""
Splits an ordered frame list into work units.

Count windows fan out keyframe extraction; time windows fan out sprite sheet
composition. Time windows are numbered consecutively, so after a gap longer
than one window their indices run behind the minute-aligned shot windows of
the aggregator, which emits empty windows for the gap.
"""

import math
from typing import List, Sequence, Tuple

from framelabel.exceptions import ValidationException
from .models import ExtractionUnit, Frame


def partition_by_count(frames: Sequence, unit_size: int) -> List[ExtractionUnit]:
    """
    Consecutive units of exactly ``unit_size`` frames; the last may be shorter.
    """
    if unit_size < 1:
        raise ValidationException(f"unit_size must be >= 1, got {unit_size}")

    total = len(frames)
    units = []
    for index in range(math.ceil(total / unit_size)):
        start = index * unit_size
        units.append(
            ExtractionUnit(
                index=index,
                start_index=start,
                frames_per_slice=min(unit_size, total - start),
            )
        )
    return units


def partition_by_time(
    frames: Sequence[Frame], window_size_millis: int
) -> List[Tuple[int, List[Frame]]]:
    """
    Group timestamp-ordered frames into consecutive time windows.

    A frame stays in the open window while
    ``timestamp <= (window_index + 1) * window_size_millis``; the first frame
    past that bound opens window ``window_index + 1`` however far past it
    lies, so no window is empty. The last frame always lands in the
    window that is open when the list runs out, so no trailing window holds a
    single straggler.
    """
    if window_size_millis < 1:
        raise ValidationException(f"window_size_millis must be >= 1, got {window_size_millis}")

    windows: List[Tuple[int, List[Frame]]] = []
    window_index = 0
    stop = window_size_millis
    current: List[Frame] = []
    last = len(frames) - 1

    for i, frame in enumerate(frames):
        if current and frame.timestamp_millis > stop and i != last:
            windows.append((window_index, current))
            window_index += 1
            stop = (window_index + 1) * window_size_millis
            current = []
        current.append(frame)

    if current:
        windows.append((window_index, current))
    return windows


def time_windows_to_units(
    frames: Sequence[Frame], window_size_millis: int
) -> List[ExtractionUnit]:
    """The windows of ``partition_by_time`` as index ranges into ``frames``."""
    units = []
    start = 0
    for window_index, window in partition_by_time(frames, window_size_millis):
        units.append(
            ExtractionUnit(index=window_index, start_index=start, frames_per_slice=len(window))
        )
        start += len(window)
    return units
