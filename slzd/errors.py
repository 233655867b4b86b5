"""Error taxonomy for the SLZD pipeline."""

from pathlib import Path
from typing import Optional, Union


class LoadError(Exception):
    """
    An input path could not be resolved into a point cloud.
    Fatal: callers must stop instead of continuing with a partial cloud.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class InvalidParameter(ValueError):
    """A precondition was violated (non-positive voxel size, too few points, ...)."""


class EmptyInputWarning(UserWarning):
    """
    Non-fatal diagnostic attached to log records when a sub-cloud is empty
    at a conversion boundary.
    """

    def __init__(self, cloud_name: str, direction: str):
        super().__init__(f"[{direction}] {cloud_name} cloud is empty")
        self.cloud_name = cloud_name
        self.direction = direction
