"""Payload models exchanged with the NVR."""

from .protect_models import Bootstrap, Camera, CameraChannel, NvrInfo, UserConfig

__all__ = ["Bootstrap", "Camera", "CameraChannel", "NvrInfo", "UserConfig"]
