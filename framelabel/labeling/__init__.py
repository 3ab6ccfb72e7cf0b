from .annotations import (
    LabelingJobType,
    LabelingJob,
    AnnotationCollector,
    ClassificationAnnotations,
    BoundingBoxAnnotations,
    StateCollectAnnotations,
    collector_for,
)

__all__ = [
    "LabelingJobType",
    "LabelingJob",
    "AnnotationCollector",
    "ClassificationAnnotations",
    "BoundingBoxAnnotations",
    "StateCollectAnnotations",
    "collector_for",
]
