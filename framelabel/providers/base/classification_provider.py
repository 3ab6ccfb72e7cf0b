from abc import ABC, abstractmethod
from typing import List

from framelabel.video_pipeline.core.models import CustomLabel, ImageRef, ModelRef


class ClassificationProvider(ABC):
    """Abstract base class for the custom-label classification oracle."""

    @abstractmethod
    async def classify(self, image: ImageRef, model: ModelRef, min_confidence: float = 50.0) -> List[CustomLabel]:
        """
        Score one image against a trained model.

        Raises TransientProviderException for throttling and other retryable
        failures, ProviderException for everything else.
        """
        pass

    @abstractmethod
    async def close(self):
        """Close the provider and cleanup resources."""
        pass
