"""
Consolidation of human labeling output into a training manifest.

The labeling service writes a JSON-lines manifest; how its records turn into
training records depends on the job type, chosen by an explicit
``LabelingJobType`` tag.
"""

import asyncio
import io
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from loguru import logger
from PIL import Image

from framelabel.exceptions import ResourceNotFoundException, ValidationException
from framelabel.providers.base import StorageProvider
from framelabel.video_pipeline.core.models import ImageRef
from framelabel.video_pipeline.states.base_state import (
    KEYFRAMES_JSON,
    BaseState,
    States,
    require_fields,
    require_input,
)

PLACE_HOLDER = "PLACE_HOLDER"
CONSOLIDATED_ANNOTATIONS_JSON = "consolidatedAnnotations.json"
BOUNDING_BOX_LABELING_TYPE = "video-object-detection_BB"


class LabelingJobType(str, Enum):
    CLASSIFICATION = "classification"
    BOUNDING_BOX = "bounding_box"

    @classmethod
    def from_input(cls, src: Dict[str, Any]) -> "LabelingJobType":
        """``labelingJobType`` when given, else derived from ``trainingType`` (``concept`` = classification)."""
        if src.get("labelingJobType"):
            try:
                return cls(src["labelingJobType"])
            except ValueError as e:
                raise ValidationException(f"unknown labelingJobType {src['labelingJobType']}") from e
        return cls.CLASSIFICATION if src.get("trainingType") == "concept" else cls.BOUNDING_BOX


def parse_object_uri(uri: str) -> ImageRef:
    """``<scheme>://<bucket>/<key>`` to an object reference."""
    parsed = urlparse(uri)
    key = parsed.path.lstrip("/")
    if not parsed.netloc or not key:
        raise ValidationException(f"not an object uri: {uri}")
    return ImageRef(bucket=parsed.netloc, key=key)


@dataclass(frozen=True)
class LabelingJob:
    name: str
    attribute_name: str
    output_dataset: ImageRef

    @classmethod
    def from_output(cls, data: Dict[str, Any]) -> "LabelingJob":
        missing = [k for k in ("labelingJobName", "labelAttributeName", "outputDatasetUri") if not data.get(k)]
        if missing:
            raise ValidationException(f"labeling job is missing {', '.join(missing)}")
        return cls(
            name=data["labelingJobName"].split("/")[-1],
            attribute_name=data["labelAttributeName"],
            output_dataset=parse_object_uri(data["outputDatasetUri"]),
        )


class AnnotationCollector(ABC):
    """Turns a labeling job's output manifest into training records."""

    job_type: LabelingJobType

    def __init__(self, storage: StorageProvider):
        self.storage = storage

    async def load_manifest(self, ref: ImageRef) -> List[Dict[str, Any]]:
        body = (await self.storage.get(ref.bucket, ref.key)).decode("utf-8")
        return [json.loads(line) for line in body.splitlines() if line.strip()]

    @abstractmethod
    async def collect(self, job: LabelingJob) -> List[Dict[str, Any]]:
        pass


class ClassificationAnnotations(AnnotationCollector):
    """Manifest records pass through, minus the placeholder class."""

    job_type = LabelingJobType.CLASSIFICATION

    async def collect(self, job: LabelingJob) -> List[Dict[str, Any]]:
        records = await self.load_manifest(job.output_dataset)
        metadata_key = f"{job.attribute_name}-metadata"
        kept = [r for r in records if (r.get(metadata_key) or {}).get("class-name") != PLACE_HOLDER]
        logger.info(f"{job.name}: kept {len(kept)}/{len(records)} classification records")
        return kept


class BoundingBoxAnnotations(AnnotationCollector):
    """
    Expands video sequence labels into one object-detection record per frame.

    Frames without any box are dropped.
    """

    job_type = LabelingJobType.BOUNDING_BOX

    async def _frame_size(self, sequence_prefix: ImageRef) -> Tuple[Optional[int], Optional[int]]:
        try:
            keyframes = await self.storage.get_json(sequence_prefix.bucket, f"{sequence_prefix.key}/{KEYFRAMES_JSON}")
        except ResourceNotFoundException:
            return None, None
        return keyframes.get("width"), keyframes.get("height")

    async def _image_size(self, ref: ImageRef) -> Tuple[int, int]:
        with Image.open(io.BytesIO(await self.storage.get(ref.bucket, ref.key))) as img:
            return img.width, img.height

    async def _parse_record(self, job: LabelingJob, record: Dict[str, Any], created: str) -> List[Dict[str, Any]]:
        source = parse_object_uri(record["source-ref"])
        sequence = await self.storage.get_json(source.bucket, source.key)
        sequence_prefix = parse_object_uri(sequence["prefix"].rstrip("/"))
        frames_by_number = {int(f["frame-no"]): f["frame"] for f in sequence.get("frames", [])}
        width, height = await self._frame_size(sequence_prefix)

        label_ref = parse_object_uri(record[job.attribute_name])
        seq_label = await self.storage.get_json(label_ref.bucket, label_ref.key)
        metadata = record.get(f"{job.attribute_name}-metadata") or {}

        results = []
        for per_frame in seq_label.get("detection-annotations", []):
            frame_no = int(per_frame["frame-no"])
            if frame_no not in frames_by_number:
                raise ValidationException(f"{job.name}: frame {frame_no} not in sequence {source.key}")
            frame_ref = ImageRef(sequence_prefix.bucket, f"{sequence_prefix.key}/{frames_by_number[frame_no]}")

            if width and height:
                actual_w, actual_h = width, height
            else:
                actual_w, actual_h = await self._image_size(frame_ref)

            boxes = [
                {
                    "class_id": int(a["class-id"]),
                    "top": a["top"],
                    "left": a["left"],
                    "width": a["width"],
                    "height": a["height"],
                }
                for a in per_frame.get("annotations", [])
            ]
            results.append({
                "source-ref": f"{urlparse(sequence['prefix']).scheme}://{frame_ref.bucket}/{frame_ref.key}",
                BOUNDING_BOX_LABELING_TYPE: {
                    "image_size": [{"width": actual_w, "height": actual_h, "depth": 3}],
                    "annotations": boxes,
                },
                f"{BOUNDING_BOX_LABELING_TYPE}-metadata": {
                    "objects": [{"confidence": 1} for _ in boxes],
                    "type": "groundtruth/object-detection",
                    "class-map": metadata.get("class-map", {}),
                    "human-annotated": "yes",
                    "creation-date": created,
                    "job-name": f"labeling-job/{BOUNDING_BOX_LABELING_TYPE}",
                },
            })
        return results

    async def collect(self, job: LabelingJob) -> List[Dict[str, Any]]:
        records = await self.load_manifest(job.output_dataset)
        created = datetime.now(timezone.utc).isoformat()
        parsed = await asyncio.gather(*[self._parse_record(job, r, created) for r in records])
        annotations = [
            item
            for per_record in parsed
            for item in per_record
            if item[BOUNDING_BOX_LABELING_TYPE]["annotations"]
        ]
        logger.info(f"{job.name}: {len(annotations)} annotated frames from {len(records)} sequences")
        return annotations


COLLECTORS = {
    LabelingJobType.CLASSIFICATION: ClassificationAnnotations,
    LabelingJobType.BOUNDING_BOX: BoundingBoxAnnotations,
}


def collector_for(job_type: LabelingJobType, storage: StorageProvider) -> AnnotationCollector:
    return COLLECTORS[job_type](storage)


class StateCollectAnnotations(BaseState):
    """Write ``<projectName>/collect-annotations/consolidatedAnnotations.json``."""

    validators = (
        require_input,
        require_fields("bucket", "projectName"),
    )

    async def execute(self):
        src = self.input
        job = LabelingJob.from_output(self.state_output(States.START_LABELING_JOB.value))
        collector = collector_for(LabelingJobType.from_input(src), self.storage)
        annotations = await collector.collect(job)

        key = f"{src['projectName']}/{States.COLLECT_ANNOTATIONS.value}/{CONSOLIDATED_ANNOTATIONS_JSON}"
        await self.write_json(src["bucket"], key, annotations)

        self.set_output(States.COLLECT_ANNOTATIONS.value, {
            "output": {
                "bucket": src["bucket"],
                "key": key,
                "labelingJobName": job.name,
                "labelingJobType": collector.job_type.value,
            },
        })
        return self.to_json()
