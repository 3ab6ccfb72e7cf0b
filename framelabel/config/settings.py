from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, PrivateAttr
from typing import Optional
from dotenv import load_dotenv, find_dotenv


def _settings_config(prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False
    )


class StorageConfig(BaseSettings):
    """Object storage configuration (STORAGE_*)."""

    provider: str = Field(default="local", description="'azure' or 'local'")
    account_url: Optional[str] = Field(default=None)
    connection_string: Optional[str] = Field(default=None)
    use_managed_identity: bool = Field(default=True)
    base_path: str = Field(default="./local_storage", description="Root folder of the local provider")

    model_config = _settings_config("STORAGE_")


class ClassificationConfig(BaseSettings):
    """Classification oracle configuration (CLASSIFICATION_*)."""

    provider: str = Field(default="azure_custom_vision")
    endpoint: Optional[str] = Field(default=None)
    prediction_key: Optional[str] = Field(default=None)
    api_version: str = Field(default="v3.0")
    project_type: str = Field(default="classification", description="'classification' or 'object_detection'")
    timeout: int = Field(default=30)
    min_confidence: float = Field(default=50.0, ge=0.0, le=100.0)

    model_config = _settings_config("CLASSIFICATION_")


class LeaseStoreConfig(BaseSettings):
    """Lease (model timer) and progress cursor stores (LEASE_*)."""

    provider: str = Field(default="memory", description="'azure' or 'memory'")
    container_name: str = Field(default="model-timers")
    progress_container_name: str = Field(default="inference-progress")

    model_config = _settings_config("LEASE_")


class PipelineConfig(BaseSettings):
    """Tunables of the keyframe / inference / sprite steps (PIPELINE_*)."""

    frames_per_slice: int = Field(default=600, ge=1)
    shot_window_millis: int = Field(default=60 * 1000, ge=1)
    detect_custom_labels_tps: int = Field(default=5, ge=1)
    lease_refresh_threshold_seconds: int = Field(default=30, ge=0)
    lease_extension_seconds: int = Field(default=120, ge=1)
    deadline_margin_seconds: int = Field(default=30, ge=0)
    default_remaining_time_millis: int = Field(default=15 * 60 * 1000, ge=0)
    sprite_tile_width: int = Field(default=96, ge=2)
    sprite_max_per_row: int = Field(default=20, ge=1)
    sprite_border_px: int = Field(default=1, ge=0)
    sprite_jpeg_quality: int = Field(default=80, ge=1, le=95)
    upload_concurrency: int = Field(default=100, ge=1)
    classify_retries: int = Field(default=3, ge=1)
    storage_write_retries: int = Field(default=10, ge=1)
    retry_initial_delay: float = Field(default=1.0, ge=0.0)

    model_config = _settings_config("PIPELINE_")


class LoggingConfig(BaseSettings):
    """Logging configuration (LOG_*)."""

    level: str = Field(default="INFO")
    file: Optional[str] = Field(default=None)
    enable_json: bool = Field(default=False)
    enable_file: bool = Field(default=False)
    max_file_size: str = Field(default="10 MB")
    retention_days: int = Field(default=7)

    model_config = _settings_config("LOG_")


class FrameLabelConfig(BaseSettings):
    """Main configuration class."""

    app_name: str = Field(default="framelabel")
    environment: str = Field(default="development")

    _storage: Optional[StorageConfig] = PrivateAttr(default=None)
    _classification: Optional[ClassificationConfig] = PrivateAttr(default=None)
    _lease_store: Optional[LeaseStoreConfig] = PrivateAttr(default=None)
    _pipeline: Optional[PipelineConfig] = PrivateAttr(default=None)
    _logging: Optional[LoggingConfig] = PrivateAttr(default=None)

    model_config = _settings_config("FRAMELABEL_")

    def __init__(self, **kwargs):
        # Force load environment variables before initializing
        load_dotenv(find_dotenv())
        super().__init__(**kwargs)

    @property
    def storage(self) -> StorageConfig:
        if self._storage is None:
            self._storage = StorageConfig()
        return self._storage

    @property
    def classification(self) -> ClassificationConfig:
        if self._classification is None:
            self._classification = ClassificationConfig()
        return self._classification

    @property
    def lease_store(self) -> LeaseStoreConfig:
        if self._lease_store is None:
            self._lease_store = LeaseStoreConfig()
        return self._lease_store

    @property
    def pipeline(self) -> PipelineConfig:
        if self._pipeline is None:
            self._pipeline = PipelineConfig()
        return self._pipeline

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            self._logging = LoggingConfig()
        return self._logging
