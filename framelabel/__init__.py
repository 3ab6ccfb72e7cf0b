"""framelabel: custom-label keyframe, inference, shot aggregation and sprite pipeline."""

from .exceptions import (
    FrameLabelException,
    ProviderException,
    TransientProviderException,
    ConfigurationException,
    ValidationException,
    ResourceNotFoundException,
    CompositionException,
)

__version__ = "0.1.0"

__all__ = [
    "FrameLabelException",
    "ProviderException",
    "TransientProviderException",
    "ConfigurationException",
    "ValidationException",
    "ResourceNotFoundException",
    "CompositionException",
    "__version__",
]
