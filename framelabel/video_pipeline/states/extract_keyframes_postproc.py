from framelabel.exceptions import ValidationException
from .base_state import BaseState, States


class StateExtractKeyframesPostproc(BaseState):
    """Total the per-unit extraction counts; the iterators are no longer needed."""

    async def execute(self):
        prev_state = self.state_output(States.EXTRACT_KEYFRAMES.value)
        counts = prev_state.get("iterators") or []
        if not all(isinstance(count, int) for count in counts):
            raise ValidationException("extract-keyframes iterators must be frame counts")

        prev_state.setdefault("output", {})["totalFrames"] = sum(counts)
        prev_state.pop("iterators", None)
        return self.to_json()
