from .base_state import (
    BaseState,
    StepContext,
    States,
    make_output_path,
    require_fields,
    require_input,
    require_present,
)
from .probe_video import StateProbeVideo
from .extract_keyframes import StateExtractKeyframes
from .extract_keyframes_postproc import StateExtractKeyframesPostproc
from .project_version_started import StateProjectVersionStarted
from .detect_custom_labels import StateDetectCustomLabels
from .map_frames_shots import StateMapFramesShots
from .create_sprite_images_preproc import StateCreateSpriteImagesPreproc
from .create_sprite_images import StateCreateSpriteImages
from .job_completed import StateJobCompleted

__all__ = [
    "BaseState",
    "StepContext",
    "States",
    "make_output_path",
    "require_fields",
    "require_input",
    "require_present",
    "StateProbeVideo",
    "StateExtractKeyframes",
    "StateExtractKeyframesPostproc",
    "StateProjectVersionStarted",
    "StateDetectCustomLabels",
    "StateMapFramesShots",
    "StateCreateSpriteImagesPreproc",
    "StateCreateSpriteImages",
    "StateJobCompleted",
]
