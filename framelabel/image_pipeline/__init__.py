from .detect_custom_labels import StateImageDetectCustomLabels

__all__ = ["StateImageDetectCustomLabels"]
