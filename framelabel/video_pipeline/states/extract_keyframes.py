import asyncio
import os
import tempfile

import aiofiles
from loguru import logger

from framelabel.video_pipeline.core.models import ExtractionUnit
from .base_state import BaseState, States, require_fields, require_input, require_present


class StateExtractKeyframes(BaseState):
    """
    Decode one extraction unit's keyframes and upload them as JPEGs.

    Runs once per iterator of the probe step; returns the number of frames
    uploaded so the post-processing step can total them.
    """

    validators = (
        require_input,
        require_fields("bucket", "key", "keyframesJson"),
        require_present("startIndex", "framesPerSlice"),
    )

    async def _upload(self, bucket: str, prefix: str, frame_number: int, path: str):
        async with aiofiles.open(path, "rb") as f:
            body = await f.read()
        await self.write(bucket, f"{prefix}/{frame_number}.jpg", body, "image/jpeg")

    async def execute(self) -> int:
        src = self.input
        keyframes = await self.load_keyframes(src["bucket"], src["keyframesJson"])
        unit = ExtractionUnit(
            index=src.get("index", 0),
            start_index=int(src["startIndex"]),
            frames_per_slice=int(src["framesPerSlice"]),
        )
        frames = unit.slice(keyframes.frames)
        prefix = self.make_output_path(src["key"], States.EXTRACT_KEYFRAMES.value)

        with tempfile.TemporaryDirectory(prefix="framelabel-") as tmp_dir:
            video_path = await self.storage.download_to_file(
                src["bucket"], src["key"], os.path.join(tmp_dir, os.path.basename(src["key"]))
            )
            extracted = await self.media.extract(
                video_path, [f.frame_number for f in frames], os.path.join(tmp_dir, "frames")
            )

            processed = 0
            pending = list(extracted.items())
            while pending:
                splices = pending[:self.pipeline.upload_concurrency]
                pending = pending[self.pipeline.upload_concurrency:]
                await asyncio.gather(*[
                    self._upload(src["bucket"], prefix, frame_number, path)
                    for frame_number, path in splices
                ])
                processed += len(splices)

        logger.info(f"{src['key']}: unit {unit.index} uploaded {processed} keyframes")
        return processed
