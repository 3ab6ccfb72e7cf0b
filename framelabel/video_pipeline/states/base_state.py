"""
Shared plumbing of the pipeline step handlers.

A step receives ``{"state", "input", "output"}`` from the orchestrator,
validates its input, does one bounded unit of work and hands back the
(updated) ``{"input", "output"}`` document, or a bare value for map-state
iterations.
"""

import copy
import json
import os
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from loguru import logger

from framelabel.exceptions import ValidationException
from framelabel.providers import Providers
from framelabel.utils.error_handler import retry_async
from framelabel.video_pipeline.core.ffmpeg_helper import FFmpegHelper
from framelabel.video_pipeline.core.models import ProbeResult

KEYFRAMES_JSON = "keyframes.json"


class States(str, Enum):
    PROBE_VIDEO = "probe-video"
    EXTRACT_KEYFRAMES = "extract-keyframes"
    EXTRACT_KEYFRAMES_POSTPROC = "extract-keyframes-postproc"
    PROJECT_VERSION_STARTED = "project-version-started"
    DETECT_CUSTOM_LABELS = "detect-custom-labels"
    MAP_FRAMES_SHOTS = "map-frames-shots"
    CREATE_SPRITE_IMAGES_PREPROC = "create-sprite-images-preproc"
    CREATE_SPRITE_IMAGES = "create-sprite-images"
    COLLECT_ANNOTATIONS = "collect-annotations"
    START_LABELING_JOB = "start-labeling-job"
    JOB_COMPLETED = "job-completed"


@dataclass
class StepContext:
    """
    Invocation budget of one step.

    ``remaining_time_millis`` is the time the host grants this invocation;
    when unknown, ``default_remaining_time_millis`` applies.
    """
    remaining_time_millis: Optional[int] = None
    default_remaining_time_millis: int = 15 * 60 * 1000
    clock: Callable[[], float] = time.time
    started_at: Optional[float] = None

    def __post_init__(self):
        if self.started_at is None:
            self.started_at = self.clock()

    def get_remaining_time(self) -> int:
        budget = self.remaining_time_millis
        if budget is None:
            budget = self.default_remaining_time_millis
        return budget

    @property
    def deadline(self) -> float:
        """Absolute epoch seconds by which the invocation must return."""
        return self.started_at + self.get_remaining_time() / 1000


Validator = Callable[[Optional[Dict[str, Any]]], None]


def require_input(src: Optional[Dict[str, Any]]):
    if not src:
        raise ValidationException("missing input")


def require_fields(*names: str) -> Validator:
    """Validator failing when any of ``names`` is absent, None or empty."""
    def validator(src):
        src = src or {}
        missing = [name for name in names if src.get(name) in (None, "", [])]
        if missing:
            raise ValidationException(f"missing {', '.join(missing)}", details={"missing": missing})
    return validator


def require_present(*names: str) -> Validator:
    """Like ``require_fields`` but accepts falsy values such as ``0``."""
    def validator(src):
        src = src or {}
        missing = [name for name in names if src.get(name) is None]
        if missing:
            raise ValidationException(f"missing {', '.join(missing)}", details={"missing": missing})
    return validator


def make_output_path(ref: str, sub_path: str = "") -> str:
    """
    ``dir/of/ref/<stem>/<sub_path>`` where the stem keeps only ``[a-zA-Z0-9_-]``.

    >>> make_output_path("videos/My Clip (1).mp4", "extract-keyframes")
    'videos/MyClip1/extract-keyframes'
    """
    directory, name = os.path.split(ref)
    stem = re.sub(r"[^a-zA-Z0-9_-]", "", os.path.splitext(name)[0])
    parts = [p for p in (directory, stem, sub_path) if p]
    return "/".join(parts)


def unwrap_nested_output(event: Dict[str, Any]) -> Dict[str, Any]:
    """Lift the document of a nested workflow execution to the event root."""
    nested = event.get("nestedStateOutput")
    if nested is None:
        return event
    if "ExecutionArn" in nested or isinstance(nested.get("Output"), str):
        nested = json.loads(nested["Output"])
    return {**nested, "state": event.get("state")}


def merge_multi_state_outputs(event: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the documents of parallel branches, later branches winning."""
    branches = event.get("multiStateOutputs")
    if branches is None:
        return event
    merged = {"input": {}, "output": {}}
    for branch in branches:
        merged["input"].update(branch.get("input") or {})
        merged["output"].update(branch.get("output") or {})
    merged["state"] = event.get("state")
    return merged


class BaseState:
    """
    One pipeline step.

    Subclasses list their input ``validators`` and implement ``execute``;
    ``process`` runs the validators before any work is done.
    """

    validators: Sequence[Validator] = (
        require_input,
        require_fields("bucket", "key", "projectVersionArn"),
    )

    def __init__(
        self,
        event: Dict[str, Any],
        context: Optional[StepContext] = None,
        providers: Optional[Providers] = None,
        media: Optional[FFmpegHelper] = None,
    ):
        event = self.prepare_event(event)
        self.context = context or StepContext()
        self.providers = providers or Providers.from_config()
        self.pipeline = self.providers.config.pipeline
        self.media = media or FFmpegHelper()
        self.t0 = int(time.time() * 1000)
        self.state = event.get("state")
        self.input = copy.deepcopy(event.get("input"))
        self.output = copy.deepcopy(event.get("output") or {})

    @classmethod
    def prepare_event(cls, event: Dict[str, Any]) -> Dict[str, Any]:
        return event

    @property
    def storage(self):
        return self.providers.storage

    def validate(self):
        for validator in self.validators:
            validator(self.input)

    async def execute(self) -> Any:
        raise NotImplementedError

    async def process(self) -> Any:
        self.validate()
        logger.info(f"[{self.state}] {(self.input or {}).get('key', '')}")
        return await self.execute()

    def to_json(self) -> Dict[str, Any]:
        return {
            "input": self.input,
            "output": self.output,
        }

    def set_output(self, state: str, data: Optional[Dict[str, Any]]):
        """Merge ``data`` into ``output[state]`` and stamp its metrics (t0 kept from the first call)."""
        previous = self.output.get(state) or {}
        self.output[state] = {
            **previous,
            **(data or {}),
            "metrics": {
                "t0": (previous.get("metrics") or {}).get("t0") or self.t0,
                "t1": int(time.time() * 1000),
            },
        }

    def state_output(self, state: str) -> Dict[str, Any]:
        found = self.output.get(state)
        if not found:
            raise ValidationException(f"missing output of {state}")
        return found

    def make_output_path(self, ref: str, sub_path: str = "") -> str:
        return make_output_path(ref, sub_path)

    async def load_keyframes(self, bucket: str, key: str) -> ProbeResult:
        return ProbeResult.from_json(await self.storage.get_json(bucket, key))

    async def write(self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store ``data`` within the pipeline's storage write retry budget."""
        return await retry_async(
            self.storage.put,
            bucket,
            key,
            data,
            content_type,
            retries=self.pipeline.storage_write_retries,
            initial_delay=self.pipeline.retry_initial_delay,
        )

    async def write_json(self, bucket: str, key: str, data: Any) -> str:
        return await retry_async(
            self.storage.put_json,
            bucket,
            key,
            data,
            retries=self.pipeline.storage_write_retries,
            initial_delay=self.pipeline.retry_initial_delay,
        )
