from typing import Optional

from framelabel.video_pipeline.core.inference_runner import RateBudgetedInferenceRunner
from framelabel.video_pipeline.core.lease import throughput
from framelabel.video_pipeline.core.models import ImageRef, ModelRef
from .base_state import BaseState, States, unwrap_nested_output
from .project_version_started import inference_units_of


class StateDetectCustomLabels(BaseState):
    """
    Classify every keyframe, resuming from the cursor of the previous round.

    Returns ``status=processing`` while frames remain; the orchestrator loops
    back into this step with the returned document until ``completed``.
    """

    @classmethod
    def prepare_event(cls, event):
        return unwrap_nested_output(event)

    @staticmethod
    def progress_unit_id(bucket: str, prefix: str, model: ModelRef, run_id: Optional[str]) -> Optional[str]:
        """Progress key of one detection run; None (no persisted cursor) without a run id."""
        if not run_id:
            return None
        return f"{bucket}/{prefix}#{model.resource_id}#{run_id}"

    async def execute(self):
        src = self.input
        keyframes_state = self.state_output(States.EXTRACT_KEYFRAMES.value)["output"]
        cur_state = self.output.get(States.DETECT_CUSTOM_LABELS.value) or {}
        bucket = (cur_state.get("output") or {}).get("bucket") or keyframes_state["bucket"]
        prefix = self.make_output_path(src["key"], States.DETECT_CUSTOM_LABELS.value)

        keyframes = await self.load_keyframes(keyframes_state["bucket"], keyframes_state["keyframesJson"])
        lease = self.state_output(States.PROJECT_VERSION_STARTED.value)

        runner = RateBudgetedInferenceRunner(
            classification=self.providers.classification,
            storage=self.storage,
            lease_store=self.providers.lease_store,
            progress_store=self.providers.progress_store,
            throughput=throughput(inference_units_of(src, self.output), self.pipeline.detect_custom_labels_tps),
            deadline=self.context.deadline,
            clock=self.context.clock,
            deadline_margin=self.pipeline.deadline_margin_seconds,
            lease_threshold=self.pipeline.lease_refresh_threshold_seconds,
            lease_extension=self.pipeline.lease_extension_seconds,
            min_confidence=self.providers.config.classification.min_confidence,
            classify_retries=self.pipeline.classify_retries,
            write_retries=self.pipeline.storage_write_retries,
            retry_initial_delay=self.pipeline.retry_initial_delay,
        )

        def image_ref(frame):
            return ImageRef(keyframes_state["bucket"], f"{keyframes_state['prefix']}/{frame.frame_number}.jpg")

        model = ModelRef.from_input(src)
        result = await runner.run(
            keyframes.frames,
            model,
            image_ref,
            bucket,
            prefix,
            lease_expiry=int(lease["ttl"]),
            cursor=int(cur_state.get("cursor") or 0),
            unit_id=self.progress_unit_id(bucket, prefix, model, lease.get("runId")),
        )

        self.set_output(States.PROJECT_VERSION_STARTED.value, {"ttl": result.lease_expiry})
        self.set_output(States.DETECT_CUSTOM_LABELS.value, {
            "status": result.status.value,
            "cursor": result.cursor,
            "output": {
                "bucket": bucket,
                "prefix": prefix,
            },
        })
        return self.to_json()
