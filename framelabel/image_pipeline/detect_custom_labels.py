"""Custom-label detection of a single still image."""

import os

from framelabel.utils.error_handler import retry_async
from framelabel.video_pipeline.core.lease import refresh_lease
from framelabel.video_pipeline.core.models import ImageRef, ModelRef
from framelabel.video_pipeline.states.base_state import (
    BaseState,
    States,
    require_fields,
    require_input,
    unwrap_nested_output,
)


class StateImageDetectCustomLabels(BaseState):
    """Classify ``input.key`` and store the labels next to the image as ``<stem>.json``."""

    validators = (
        require_input,
        require_fields("bucket", "key", "projectArn", "projectVersionArn"),
    )

    @classmethod
    def prepare_event(cls, event):
        return unwrap_nested_output(event)

    async def execute(self):
        src = self.input
        model = ModelRef.from_input(src)

        lease = self.state_output(States.PROJECT_VERSION_STARTED.value)
        ttl = await refresh_lease(
            self.providers.lease_store,
            model.resource_id,
            int(lease["ttl"]),
            self.context.clock(),
            threshold=self.pipeline.lease_refresh_threshold_seconds,
            extension=self.pipeline.lease_extension_seconds,
        )

        labels = await retry_async(
            self.providers.classification.classify,
            ImageRef(src["bucket"], src["key"]),
            model,
            self.providers.config.classification.min_confidence,
            retries=self.pipeline.classify_retries,
            initial_delay=self.pipeline.retry_initial_delay,
        )

        prefix = self.make_output_path(src["key"], States.DETECT_CUSTOM_LABELS.value)
        key = f"{prefix}/{os.path.splitext(os.path.basename(src['key']))[0]}.json"
        await self.write_json(src["bucket"], key, {
            "CustomLabels": [label.model_dump(by_alias=True, exclude_none=True) for label in labels],
        })

        self.set_output(States.PROJECT_VERSION_STARTED.value, {"ttl": ttl})
        self.set_output(States.DETECT_CUSTOM_LABELS.value, {
            "output": {
                "bucket": src["bucket"],
                "key": key,
            },
        })
        return self.to_json()
