import asyncio
from typing import Dict, List, Optional

from loguru import logger

from framelabel.exceptions import ResourceNotFoundException
from framelabel.video_pipeline.core.models import Detection, Frame
from framelabel.video_pipeline.core.shot_aggregator import aggregate_shots
from .base_state import BaseState, States, merge_multi_state_outputs

MAP_FRAMES_SHOTS_JSON = "mapFramesShots.json"


class StateMapFramesShots(BaseState):
    """Join the detection and sprite branches and index labels per minute."""

    @classmethod
    def prepare_event(cls, event):
        return merge_multi_state_outputs(event)

    def __init__(self, event, *args, **kwargs):
        super().__init__(event, *args, **kwargs)
        sprites = self.output.get(States.CREATE_SPRITE_IMAGES.value)
        if sprites:
            sprites.pop("iterators", None)

    async def _load_detection(self, bucket: str, prefix: str, frame: Frame) -> Optional[Detection]:
        try:
            data = await self.storage.get_json(bucket, f"{prefix}/{frame.frame_number}.json")
        except ResourceNotFoundException:
            logger.warning(f"no detection for frame {frame.frame_number}, treated as unlabeled")
            return None
        return Detection.model_validate(data)

    async def _load_detections(self, bucket: str, prefix: str, frames: List[Frame]) -> Dict[int, Detection]:
        detections = {}
        step = self.pipeline.upload_concurrency
        for i in range(0, len(frames), step):
            batch = frames[i:i + step]
            results = await asyncio.gather(*[self._load_detection(bucket, prefix, f) for f in batch])
            detections.update({f.frame_number: d for f, d in zip(batch, results) if d is not None})
        return detections

    async def execute(self):
        keyframes_state = self.state_output(States.EXTRACT_KEYFRAMES.value)["output"]
        detect_state = self.state_output(States.DETECT_CUSTOM_LABELS.value)["output"]

        keyframes = await self.load_keyframes(keyframes_state["bucket"], keyframes_state["keyframesJson"])
        detections = await self._load_detections(detect_state["bucket"], detect_state["prefix"], keyframes.frames)
        windows = aggregate_shots(keyframes.frames, detections, self.pipeline.shot_window_millis)

        prefix = self.make_output_path(self.input["key"], States.MAP_FRAMES_SHOTS.value)
        key = f"{prefix}/{MAP_FRAMES_SHOTS_JSON}"
        await self.write_json(detect_state["bucket"], key, [w.to_json() for w in windows])
        logger.info(f"{self.input['key']}: {len(windows)} shot windows")

        self.set_output(States.MAP_FRAMES_SHOTS.value, {
            "output": {
                "bucket": detect_state["bucket"],
                "key": key,
            },
        })
        return self.to_json()
