from collections import deque
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from .models import Detection, Frame, ShotWindow

PER_MIN_INTERVAL = 60 * 1000

DetectionLike = Union[Detection, Sequence[str]]


def _labels_of(detection: Optional[DetectionLike]) -> Iterable[str]:
    if detection is None:
        return ()
    if isinstance(detection, Detection):
        return detection.label_names
    return detection


def aggregate_shots(
    frames: Iterable[Frame],
    detections: Mapping[int, DetectionLike],
    window_size_millis: int = PER_MIN_INTERVAL,
) -> List[ShotWindow]:
    """
    Bucket frames into fixed time windows and index labels by frame.

    Window ``n`` covers ``[n * size, (n + 1) * size]``, the upper bound
    inclusive. A frame past the upper bound closes the window only while more
    frames follow it; the last window ends at the timestamp of the last frame
    consumed, every other window at its nominal upper bound.

    ``detections`` maps frame numbers to a Detection or a plain list of label
    names; frames without an entry contribute no labels.
    """
    queue = deque(sorted(frames, key=lambda f: f.timestamp_millis))
    windows: List[ShotWindow] = []
    window_index = 0

    while queue:
        start = window_index * window_size_millis
        stop = (window_index + 1) * window_size_millis
        frame_numbers: List[int] = []
        custom_labels = {}
        timestamp = None

        while queue:
            frame = queue.popleft()
            timestamp = frame.timestamp_millis
            if timestamp < start:
                logger.warning(f"frame {frame.frame_number} @{timestamp}ms precedes window {window_index}, skipped")
                continue
            if timestamp > stop and queue:
                queue.appendleft(frame)
                break

            frame_numbers.append(frame.frame_number)
            for label in _labels_of(detections.get(frame.frame_number)):
                members = custom_labels.setdefault(label, [])
                if frame.frame_number not in members:
                    members.append(frame.frame_number)

        windows.append(
            ShotWindow(
                min_index=window_index,
                start_time=start,
                end_time=stop if queue else timestamp,
                frames=frame_numbers,
                custom_labels=custom_labels,
            )
        )
        window_index += 1

    return windows
