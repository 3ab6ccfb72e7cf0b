import sys
from typing import Optional, TYPE_CHECKING
from loguru import logger

if TYPE_CHECKING:
    from ..config.settings import LoggingConfig


class LoggerManager:
    def __init__(self):
        self.console_sink_id = None
        self.file_sink_id = None
        self.level = "INFO"
        self.serialize = False

        # Always remove the default handler
        logger.remove()

    def enable_console(self):
        if self.console_sink_id is None:
            self.console_sink_id = logger.add(
                sys.stderr, level=self.level, colorize=not self.serialize, serialize=self.serialize
            )

    def disable_console(self):
        if self.console_sink_id is not None:
            logger.remove(self.console_sink_id)
            self.console_sink_id = None

    def enable_file(self, log_file: str, rotation: str = "10 MB", retention_days: int = 7):
        if self.file_sink_id is None:
            self.file_sink_id = logger.add(
                log_file,
                level=self.level,
                rotation=rotation,
                retention=f"{retention_days} days",
                serialize=self.serialize,
                enqueue=True,
            )

    def disable_file(self):
        if self.file_sink_id is not None:
            logger.remove(self.file_sink_id)
            self.file_sink_id = None

    def configure(self, config: Optional["LoggingConfig"] = None):
        """Re-create the sinks from a LoggingConfig (console always, file when enabled)."""
        if config is None:
            from ..config.settings import LoggingConfig
            config = LoggingConfig()

        self.disable_console()
        self.disable_file()
        self.level = config.level.upper()
        self.serialize = config.enable_json

        self.enable_console()
        if config.enable_file and config.file:
            self.enable_file(config.file, config.max_file_size, config.retention_days)
        return logger


log_manager = LoggerManager()
