"""
Step dispatch: maps the orchestrator's ``event["state"]`` to a step handler.
"""

from typing import Any, Dict, Optional, Type

from loguru import logger

from framelabel.exceptions import ValidationException
from framelabel.providers import Providers
from framelabel.utils.error_handler import log_exceptions
from framelabel.video_pipeline.core.ffmpeg_helper import FFmpegHelper
from framelabel.video_pipeline.states import (
    BaseState,
    StepContext,
    States,
    StateProbeVideo,
    StateExtractKeyframes,
    StateExtractKeyframesPostproc,
    StateProjectVersionStarted,
    StateDetectCustomLabels,
    StateMapFramesShots,
    StateCreateSpriteImagesPreproc,
    StateCreateSpriteImages,
    StateJobCompleted,
)
from framelabel.image_pipeline import StateImageDetectCustomLabels
from framelabel.labeling import StateCollectAnnotations

VIDEO_STATES: Dict[str, Type[BaseState]] = {
    States.PROBE_VIDEO.value: StateProbeVideo,
    States.EXTRACT_KEYFRAMES.value: StateExtractKeyframes,
    States.EXTRACT_KEYFRAMES_POSTPROC.value: StateExtractKeyframesPostproc,
    States.PROJECT_VERSION_STARTED.value: StateProjectVersionStarted,
    States.DETECT_CUSTOM_LABELS.value: StateDetectCustomLabels,
    States.MAP_FRAMES_SHOTS.value: StateMapFramesShots,
    States.CREATE_SPRITE_IMAGES_PREPROC.value: StateCreateSpriteImagesPreproc,
    States.CREATE_SPRITE_IMAGES.value: StateCreateSpriteImages,
    States.JOB_COMPLETED.value: StateJobCompleted,
}

IMAGE_STATES: Dict[str, Type[BaseState]] = {
    States.PROJECT_VERSION_STARTED.value: StateProjectVersionStarted,
    States.DETECT_CUSTOM_LABELS.value: StateImageDetectCustomLabels,
    States.JOB_COMPLETED.value: StateJobCompleted,
}

LABELING_STATES: Dict[str, Type[BaseState]] = {
    States.COLLECT_ANNOTATIONS.value: StateCollectAnnotations,
}

WORKFLOWS: Dict[str, Dict[str, Type[BaseState]]] = {
    "video": VIDEO_STATES,
    "image": IMAGE_STATES,
    "labeling": LABELING_STATES,
}


@log_exceptions(custom_message="pipeline step failed")
async def handle_event(
    event: Dict[str, Any],
    context: Optional[StepContext] = None,
    providers: Optional[Providers] = None,
    media: Optional[FFmpegHelper] = None,
    workflow: str = "video",
) -> Any:
    """
    Run the step named by ``event["state"]``.

    Providers created here are closed before returning; injected ones are
    left to the caller. Every failure is logged and re-raised so the
    orchestrator fails the job.
    """
    if workflow not in WORKFLOWS:
        raise ValidationException(f"unknown workflow {workflow}. Supported: {list(WORKFLOWS)}")
    registry = WORKFLOWS[workflow]

    owns_providers = providers is None
    providers = providers or Providers.from_config()
    try:
        state = event.get("state")
        if state not in registry:
            raise ValidationException(f"{state} not impl")
        handler = registry[state](event, context, providers, media)
        logger.debug(f"[{workflow}] dispatching {state} to {type(handler).__name__}")
        return await handler.process()
    finally:
        if owns_providers:
            await providers.close()
