"""
Data models shared by the keyframe, inference, aggregation and sprite steps.

Immutable in-process values are frozen dataclasses; anything persisted as JSON
is a pydantic model whose aliases match the stored artifact format.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (JS Math.round)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class Frame:
    """One decoded keyframe of a source video."""
    frame_number: int
    timestamp_millis: int
    timecode_smpte: Optional[str] = None

    @classmethod
    def from_probe(cls, record: Dict[str, Any], ordinal: Optional[int] = None) -> "Frame":
        """
        Build a Frame from an ffprobe frame record.

        ``coded_picture_number`` is the frame identifier; newer ffprobe builds
        no longer report it, in which case the decode ordinal is used.
        """
        frame_number = record.get("coded_picture_number")
        if frame_number is None:
            frame_number = record.get("frame_number", ordinal)
        timestamp = float(record.get("best_effort_timestamp_time", 0.0))
        timecodes = [
            timecode
            for side_data in record.get("side_data_list") or []
            for timecode in side_data.get("timecodes") or []
        ]
        return cls(
            frame_number=int(frame_number),
            timestamp_millis=round_half_up(timestamp * 1000),
            timecode_smpte=timecodes[0].get("value") if timecodes else None,
        )


@dataclass(frozen=True)
class ExtractionUnit:
    """A contiguous sub-range ``[start_index, start_index + frames_per_slice)`` of a frame list."""
    index: int
    start_index: int
    frames_per_slice: int

    def slice(self, frames: List[Any]) -> List[Any]:
        return frames[self.start_index:self.start_index + self.frames_per_slice]

    def to_iterator(self, **extra) -> Dict[str, Any]:
        return {
            **extra,
            "index": self.index,
            "startIndex": self.start_index,
            "framesPerSlice": self.frames_per_slice,
        }


@dataclass(frozen=True)
class SpriteLayout:
    tile_width: int
    tile_height: int
    max_per_row: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "width": self.tile_width,
            "height": self.tile_height,
            "maxPerRow": self.max_per_row,
        }


@dataclass(frozen=True)
class ImageRef:
    """Location of an image in object storage."""
    bucket: str
    key: str


@dataclass(frozen=True)
class ModelRef:
    """
    Identifies the trained custom-label model.

    ``resource_id`` keys the model's lease; ``project_id`` and ``version_name``
    address the prediction endpoint.
    """
    resource_id: str
    project_id: Optional[str] = None
    version_name: Optional[str] = None

    @classmethod
    def from_input(cls, src: Dict[str, Any]) -> "ModelRef":
        resource_id = src["projectVersionArn"]
        return cls(
            resource_id=resource_id,
            project_id=src.get("projectArn") or src.get("projectId"),
            version_name=src.get("versionName") or resource_id.rstrip("/").split("/")[-1],
        )


@dataclass
class ProbeResult:
    """Keyframe metadata of a probed video."""
    frames: List[Frame]
    width: int
    height: int
    duration_millis: int
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        """The ``keyframes.json`` document."""
        return {
            "width": self.width,
            "height": self.height,
            "durationMillis": self.duration_millis,
            "frames": [
                {
                    "frameNumber": f.frame_number,
                    "timestampMillis": f.timestamp_millis,
                    "timecodeSMPTE": f.timecode_smpte,
                }
                for f in self.frames
            ],
            **self.raw,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ProbeResult":
        return cls(
            frames=[
                Frame(
                    frame_number=int(f["frameNumber"]),
                    timestamp_millis=int(f["timestampMillis"]),
                    timecode_smpte=f.get("timecodeSMPTE"),
                )
                for f in data.get("frames", [])
            ],
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
            duration_millis=int(data.get("durationMillis") or 0),
            raw={k: data[k] for k in ("streams", "format") if k in data},
        )


class InferenceStatus(str, Enum):
    COMPLETED = "completed"
    PROCESSING = "processing"


@dataclass
class InferenceResult:
    status: InferenceStatus
    cursor: int
    lease_expiry: int
    processed: int = 0


class BoundingBox(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    width: float = Field(..., alias="Width")
    height: float = Field(..., alias="Height")
    left: float = Field(..., alias="Left")
    top: float = Field(..., alias="Top")


class Geometry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bounding_box: BoundingBox = Field(..., alias="BoundingBox")


class CustomLabel(BaseModel):
    """A single scored label returned by the classification oracle."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., alias="Name")
    confidence: float = Field(..., alias="Confidence", ge=0.0, le=100.0)
    geometry: Optional[Geometry] = Field(default=None, alias="Geometry")


class Detection(BaseModel):
    """Oracle result for one frame, stored as ``<frameNumber>.json``."""
    model_config = ConfigDict(populate_by_name=True)

    frame_number: int = Field(..., alias="FrameNumber")
    timestamp_millis: int = Field(..., alias="TimestampMillis")
    timecode_smpte: Optional[str] = Field(default=None, alias="TimecodeSMPTE")
    custom_labels: List[CustomLabel] = Field(default_factory=list, alias="CustomLabels")

    @property
    def label_names(self) -> List[str]:
        return [label.name for label in self.custom_labels]

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ShotWindow(BaseModel):
    """Per-window aggregate of frames and the labels detected in them."""
    model_config = ConfigDict(populate_by_name=True)

    min_index: int = Field(..., alias="minIndex")
    start_time: int = Field(..., alias="startTime")
    end_time: int = Field(..., alias="endTime")
    frames: List[int] = Field(default_factory=list)
    custom_labels: Dict[str, List[int]] = Field(default_factory=dict, alias="customLabels")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
