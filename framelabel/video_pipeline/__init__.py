"""Keyframe, custom-label inference, shot aggregation and sprite steps for videos."""
