from framelabel.video_pipeline.core.partition import time_windows_to_units
from framelabel.video_pipeline.core.sprite import compute_layout
from .base_state import BaseState, States


class StateCreateSpriteImagesPreproc(BaseState):
    """Plan one contact sheet per shot window."""

    async def execute(self):
        src = self.input
        prev_state = self.state_output(States.EXTRACT_KEYFRAMES.value)["output"]
        keyframes = await self.load_keyframes(prev_state["bucket"], prev_state["keyframesJson"])

        layout = compute_layout(
            keyframes.width,
            keyframes.height,
            self.pipeline.sprite_tile_width,
            self.pipeline.sprite_max_per_row,
        )
        units = time_windows_to_units(keyframes.frames, self.pipeline.shot_window_millis)

        self.set_output(States.CREATE_SPRITE_IMAGES.value, {
            "iterators": [unit.to_iterator(bucket=src["bucket"], key=src["key"]) for unit in units],
            "output": {
                "bucket": src["bucket"],
                "prefix": self.make_output_path(src["key"], States.CREATE_SPRITE_IMAGES.value),
                "sprite": layout.to_dict(),
            },
        })
        return self.to_json()
