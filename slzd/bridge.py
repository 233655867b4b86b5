"""
Conversion between the two segmentation result families.

Only coordinates cross the boundary. Intensity has no counterpart in Open3D
legacy clouds and is dropped going A -> B. Plane models are never converted
here; the destination always gets ``plane_model=None``. Use
``transform_plane_model`` where the frame relation is actually known.
"""

import logging
from typing import Optional

import numpy as np
import open3d as o3d

from slzd.errors import EmptyInputWarning, InvalidParameter
from slzd.models import CloudSegmentation, Open3DSegmentation, PlaneModel, PointCloud

LOGGER = logging.getLogger(__name__)

CLOUD_FIELDS = ("downsampled", "inlier", "outlier")


def cloud_to_open3d(cloud: PointCloud) -> o3d.geometry.PointCloud:
    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(np.array(cloud.points, dtype=np.float64))
    return pcd


def open3d_to_cloud(pcd: o3d.geometry.PointCloud) -> PointCloud:
    # PointCloud copies, so the result shares nothing with the Open3D buffer
    return PointCloud(points=np.asarray(pcd.points, dtype=np.float64).reshape(-1, 3))


def _warn_empty(logger: logging.Logger, name: str, direction: str) -> None:
    diagnostic = EmptyInputWarning(name, direction)
    logger.warning("%s", diagnostic, extra={"diagnostic": diagnostic})


def to_open3d(result: CloudSegmentation, logger: Optional[logging.Logger] = None) -> Open3DSegmentation:
    """
    Convert a CloudSegmentation into an Open3DSegmentation.
    Empty sub-clouds stay empty (never None) and log one warning each.
    """
    logger = logger or LOGGER
    converted = {}
    for name in CLOUD_FIELDS:
        cloud = getattr(result, f"{name}_cloud")
        if cloud is None or cloud.is_empty:
            _warn_empty(logger, name, "to_open3d")
            converted[f"{name}_cloud"] = o3d.geometry.PointCloud()
        else:
            converted[f"{name}_cloud"] = cloud_to_open3d(cloud)

    return Open3DSegmentation(method=result.method, plane_model=None, **converted)


def to_cloud(result: Open3DSegmentation, logger: Optional[logging.Logger] = None) -> CloudSegmentation:
    """
    Convert an Open3DSegmentation into a CloudSegmentation.
    Empty sub-clouds stay empty (never None) and log one warning each.
    """
    logger = logger or LOGGER
    converted = {}
    for name in CLOUD_FIELDS:
        pcd = getattr(result, f"{name}_cloud")
        if pcd is None or len(pcd.points) == 0:
            _warn_empty(logger, name, "to_cloud")
            converted[f"{name}_cloud"] = PointCloud.empty()
        else:
            converted[f"{name}_cloud"] = open3d_to_cloud(pcd)

    return CloudSegmentation(method=result.method, plane_model=None, **converted)


def is_rigid_transform(T: np.ndarray, atol: float = 1e-8) -> bool:
    """Check if T is a valid 4x4 SE3 matrix."""
    if T.shape != (4, 4):
        return False
    if not np.allclose(T[3, :], [0, 0, 0, 1], atol=atol):
        return False
    R = T[:3, :3]
    if not np.allclose(R @ R.T, np.eye(3), atol=atol):
        return False
    if abs(np.linalg.det(R) - 1.0) > atol:
        return False
    return True


def transform_plane_model(plane: PlaneModel, T_dst_src: np.ndarray, source: Optional[str] = None) -> PlaneModel:
    """
    Express a plane fitted in frame ``src`` in frame ``dst``.

    ``T_dst_src`` maps points from src into dst (p_dst = R @ p_src + t).
    For plane coefficients pi (pi . [p, 1] = 0) this gives
    pi_dst = pi_src @ inv(T_dst_src).
    """
    T_dst_src = np.asarray(T_dst_src, dtype=np.float64)
    if not is_rigid_transform(T_dst_src):
        raise InvalidParameter("Plane transfer requires a 4x4 rigid (SE3) transform")

    R = T_dst_src[:3, :3]
    t = T_dst_src[:3, 3]
    T_src_dst = np.eye(4, dtype=np.float64)
    T_src_dst[:3, :3] = R.T
    T_src_dst[:3, 3] = -R.T @ t

    coefficients = plane.coefficients @ T_src_dst
    return PlaneModel.from_coefficients(coefficients, source=source if source is not None else plane.source)
