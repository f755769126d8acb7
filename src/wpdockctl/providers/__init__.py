"""Provider interfaces for wpdockctl."""
from __future__ import annotations

from .docker import DockerError, DockerProvider
from .editor import EditorError, EditorProvider
from .instance_status_provider import InstanceStatus, InstanceStatusProvider

__all__ = [
    "DockerError",
    "DockerProvider",
    "EditorError",
    "EditorProvider",
    "InstanceStatus",
    "InstanceStatusProvider",
]
