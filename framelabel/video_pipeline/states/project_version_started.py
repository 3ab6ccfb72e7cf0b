import math
import uuid

from framelabel.video_pipeline.core.lease import initial_lease_seconds, renew_lease, time_to_live
from framelabel.video_pipeline.core.models import ModelRef
from .base_state import BaseState, States, require_fields, require_input


def inference_units_of(src, output) -> int:
    """Provisioned inference units: recorded at model start, else requested in the input."""
    started = output.get(States.PROJECT_VERSION_STARTED.value) or {}
    return int(started.get("inferenceUnits") or (src or {}).get("inferenceUnits") or 1)


class StateProjectVersionStarted(BaseState):
    """
    Give the freshly started model a lease long enough for the whole video.

    The lease covers at least one minute of frames at the model's throughput
    and never less than two minutes. Every start stamps a fresh ``runId``
    that scopes the persisted detection cursor to this run.
    """

    validators = (
        require_input,
        require_fields("projectArn", "projectVersionArn"),
    )

    async def execute(self):
        model = ModelRef.from_input(self.input)
        keyframes = (self.output.get(States.EXTRACT_KEYFRAMES.value) or {}).get("output") or {}
        units = inference_units_of(self.input, self.output)

        seconds = initial_lease_seconds(
            keyframes.get("totalFrames") or 0,
            units,
            tps=self.pipeline.detect_custom_labels_tps,
            minimum=self.pipeline.lease_extension_seconds,
        )
        ttl = time_to_live(math.ceil(seconds), now=math.floor(self.context.clock()))
        await renew_lease(self.providers.lease_store, model.resource_id, ttl)

        self.set_output(States.PROJECT_VERSION_STARTED.value, {
            "ttl": ttl,
            "inferenceUnits": units,
            "runId": uuid.uuid4().hex,
        })
        return self.to_json()
