import asyncio

from loguru import logger

from framelabel.video_pipeline.core.models import ExtractionUnit
from framelabel.video_pipeline.core.sprite import compose_sprite_sheet, compute_layout
from .base_state import KEYFRAMES_JSON, BaseState, States, require_fields, require_input, require_present


class StateCreateSpriteImages(BaseState):
    """Compose and upload the contact sheet of one window; returns its file name."""

    validators = (
        require_input,
        require_fields("bucket", "key"),
        require_present("index", "startIndex", "framesPerSlice"),
    )

    async def execute(self) -> str:
        src = self.input
        keyframes_prefix = self.make_output_path(src["key"], States.EXTRACT_KEYFRAMES.value)
        keyframes = await self.load_keyframes(src["bucket"], f"{keyframes_prefix}/{KEYFRAMES_JSON}")
        unit = ExtractionUnit(
            index=int(src["index"]),
            start_index=int(src["startIndex"]),
            frames_per_slice=int(src["framesPerSlice"]),
        )
        frames = unit.slice(keyframes.frames)

        layout = compute_layout(
            keyframes.width,
            keyframes.height,
            self.pipeline.sprite_tile_width,
            self.pipeline.sprite_max_per_row,
        )
        images = await asyncio.gather(*[
            self.storage.get(src["bucket"], f"{keyframes_prefix}/{frame.frame_number}.jpg")
            for frame in frames
        ])
        jpeg = await asyncio.to_thread(
            compose_sprite_sheet,
            images,
            layout,
            self.pipeline.sprite_border_px,
            self.pipeline.sprite_jpeg_quality,
        )

        name = f"{unit.index}.jpg"
        prefix = self.make_output_path(src["key"], States.CREATE_SPRITE_IMAGES.value)
        await self.write(src["bucket"], f"{prefix}/{name}", jpeg, "image/jpeg")
        logger.info(f"{src['key']}: sprite {name} from {len(frames)} frames")
        return name
