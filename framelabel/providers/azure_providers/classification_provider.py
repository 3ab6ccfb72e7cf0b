import asyncio
import aiohttp
from loguru import logger
from typing import Any, Dict, List, Optional
from framelabel.providers.base import ClassificationProvider, StorageProvider
from framelabel.exceptions import ConfigurationException, ProviderException, TransientProviderException
from framelabel.video_pipeline.core.models import BoundingBox, CustomLabel, Geometry, ImageRef, ModelRef

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}

PREDICTION_ROUTES = {
    "classification": "classify",
    "object_detection": "detect",
}


class AzureCustomVisionProvider(ClassificationProvider):
    """
    Custom Vision prediction endpoint used as the custom-label oracle.

    Images are read through the storage provider and posted as raw bytes; the
    published iteration is addressed by ``ModelRef.project_id`` and
    ``ModelRef.version_name``.
    """

    def __init__(self, config: Dict[str, Any], storage: StorageProvider):
        self.config = config
        self.storage = storage
        self.endpoint = (config.get("endpoint") or "").rstrip("/")
        self.prediction_key = config.get("prediction_key")
        self.api_version = config.get("api_version", "v3.0")
        self.timeout = config.get("timeout", 30)
        project_type = config.get("project_type", "classification")

        if not self.endpoint:
            raise ConfigurationException("Custom Vision endpoint is required")
        if not self.prediction_key:
            raise ConfigurationException("Custom Vision prediction_key is required")
        if project_type not in PREDICTION_ROUTES:
            raise ConfigurationException(
                f"Unknown project_type: {project_type}. Supported: {list(PREDICTION_ROUTES)}"
            )
        self.route = PREDICTION_ROUTES[project_type]
        self.session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Prediction-Key": self.prediction_key},
            )
        return self.session

    def _url(self, model: ModelRef) -> str:
        if not model.project_id:
            raise ConfigurationException(f"model {model.resource_id} has no project id")
        return (
            f"{self.endpoint}/customvision/{self.api_version}/Prediction/{model.project_id}"
            f"/{self.route}/iterations/{model.version_name}/image"
        )

    @staticmethod
    def _to_label(prediction: Dict[str, Any]) -> CustomLabel:
        box = prediction.get("boundingBox")
        return CustomLabel(
            name=prediction["tagName"],
            confidence=round(float(prediction["probability"]) * 100, 4),
            geometry=Geometry(bounding_box=BoundingBox(**{k.capitalize(): v for k, v in box.items()})) if box else None,
        )

    async def classify(self, image: ImageRef, model: ModelRef, min_confidence: float = 50.0) -> List[CustomLabel]:
        data = await self.storage.get(image.bucket, image.key)
        url = self._url(model)
        try:
            async with self._get_session().post(
                url, data=data, headers={"Content-Type": "application/octet-stream"}
            ) as response:
                if response.status in RETRYABLE_STATUS:
                    raise TransientProviderException(
                        f"prediction throttled/unavailable ({response.status}) for {image.key}",
                        error_code=str(response.status),
                    )
                if response.status >= 400:
                    body = await response.text()
                    raise ProviderException(
                        f"prediction failed ({response.status}) for {image.key}: {body[:200]}",
                        error_code=str(response.status),
                    )
                payload = await response.json()
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise TransientProviderException(f"prediction request failed for {image.key}: {e}") from e

        labels = [self._to_label(p) for p in payload.get("predictions", [])]
        labels = [label for label in labels if label.confidence >= min_confidence]
        labels.sort(key=lambda label: label.confidence, reverse=True)
        logger.debug(f"{image.key}: {[label.name for label in labels]}")
        return labels

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
