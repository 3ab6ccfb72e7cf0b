import os
import tempfile

from loguru import logger

from framelabel.video_pipeline.core.partition import partition_by_count
from .base_state import KEYFRAMES_JSON, BaseState, States


class StateProbeVideo(BaseState):
    """List the keyframes of the source video and fan out extraction units."""

    async def execute(self):
        src = self.input
        prefix = self.make_output_path(src["key"], States.EXTRACT_KEYFRAMES.value)
        keyframes_json = f"{prefix}/{KEYFRAMES_JSON}"

        with tempfile.TemporaryDirectory(prefix="framelabel-") as tmp_dir:
            video_path = await self.storage.download_to_file(
                src["bucket"], src["key"], os.path.join(tmp_dir, os.path.basename(src["key"]))
            )
            probe = await self.media.probe(video_path)

        await self.write_json(src["bucket"], keyframes_json, probe.to_json())

        units = partition_by_count(probe.frames, self.pipeline.frames_per_slice)
        iterators = [
            unit.to_iterator(bucket=src["bucket"], key=src["key"], keyframesJson=keyframes_json)
            for unit in units
        ]
        logger.info(f"{src['key']}: {len(probe.frames)} keyframes in {len(iterators)} extraction units")

        self.set_output(States.EXTRACT_KEYFRAMES.value, {
            "output": {
                "bucket": src["bucket"],
                "prefix": prefix,
                "keyframesJson": keyframes_json,
                "streamInfo": {
                    "duration": probe.duration_millis,
                    "width": probe.width,
                    "height": probe.height,
                },
            },
            "iterators": iterators,
        })
        return self.to_json()
