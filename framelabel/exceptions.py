from typing import Dict, Optional


class FrameLabelException(Exception):
    """Base exception for the framelabel pipeline."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ProviderException(FrameLabelException):
    """Raised when an external provider fails and retrying will not help."""
    pass


class TransientProviderException(ProviderException):
    """Raised when an external provider fails in a way that may succeed on retry."""
    pass


class ConfigurationException(FrameLabelException):
    """Raised when configuration is invalid."""
    pass


class ValidationException(FrameLabelException):
    """Raised when input validation fails."""
    pass


class ResourceNotFoundException(FrameLabelException):
    """Raised when requested resource is not found."""
    pass


class CompositionException(FrameLabelException):
    """Raised when a sprite sheet cannot be composed from its source frames."""
    pass
