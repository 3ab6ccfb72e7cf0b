from .settings import (
    FrameLabelConfig,
    StorageConfig,
    ClassificationConfig,
    LeaseStoreConfig,
    PipelineConfig,
    LoggingConfig,
)

__all__ = [
    "FrameLabelConfig",
    "StorageConfig",
    "ClassificationConfig",
    "LeaseStoreConfig",
    "PipelineConfig",
    "LoggingConfig",
]
