from .base_state import BaseState, States, require_fields, require_input, unwrap_nested_output


class StateJobCompleted(BaseState):
    """Summarize where the analysis artifacts of a finished job live."""

    validators = (
        require_input,
        require_fields("bucket", "key", "projectArn", "projectVersionArn"),
    )

    @classmethod
    def prepare_event(cls, event):
        return unwrap_nested_output(event)

    def _artifact(self, state: States, *fields):
        found = (self.output.get(state.value) or {}).get("output") or {}
        picked = {name: found[name] for name in ("bucket", *fields) if name in found}
        return picked or None

    async def execute(self):
        artifacts = {
            "keyframes": self._artifact(States.EXTRACT_KEYFRAMES, "keyframesJson", "totalFrames"),
            "detections": self._artifact(States.DETECT_CUSTOM_LABELS, "prefix"),
            "shots": self._artifact(States.MAP_FRAMES_SHOTS, "key"),
            "sprites": self._artifact(States.CREATE_SPRITE_IMAGES, "prefix", "sprite"),
        }
        self.set_output(States.JOB_COMPLETED.value, {
            "output": {name: value for name, value in artifacts.items() if value},
        })
        return self.to_json()
