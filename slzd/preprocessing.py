from typing import Optional, Tuple

import numpy as np
import open3d as o3d

from slzd.errors import InvalidParameter
from slzd.models import PointCloud


def _voxel_centroids(
    xyz: np.ndarray,
    voxel_size: float,
    values: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Bucket points into cubic cells and average each occupied cell.
    The grid is anchored at the cloud's minimum bound.
    Returns centroids and, if given, per-cell means of ``values``.
    """
    if not voxel_size > 0:
        raise InvalidParameter(f"voxel_size must be > 0, got {voxel_size}")

    xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
    finite = np.isfinite(xyz).all(axis=1)
    xyz = xyz[finite]
    if values is not None:
        values = np.asarray(values, dtype=np.float64)[finite]

    if len(xyz) == 0:
        return np.zeros((0, 3)), (np.zeros(0) if values is not None else None)

    # Compute voxel indices relative to the min bound
    # Find unique (i, j, k) rows and compute centroids
    voxel_indices = np.floor((xyz - xyz.min(axis=0)) / voxel_size).astype(np.int64)

    unique_voxels, inverse_indices = np.unique(voxel_indices, axis=0, return_inverse=True)
    inverse_indices = inverse_indices.reshape(-1)
    num_voxels = len(unique_voxels)

    counts = np.bincount(inverse_indices)
    centroids = np.zeros((num_voxels, 3))

    for dim in range(3):
        centroids[:, dim] = np.bincount(inverse_indices, weights=xyz[:, dim]) / counts

    means = None
    if values is not None:
        means = np.bincount(inverse_indices, weights=values) / counts

    return centroids, means


def voxel_downsample(cloud: PointCloud, voxel_size: float = 0.1) -> PointCloud:
    """
    Downsample point cloud using voxel grid filtering.
    Each occupied cell is replaced by the centroid of its points; intensity
    is averaged the same way.
    """
    centroids, intensity = _voxel_centroids(cloud.points, voxel_size, cloud.intensity)
    return PointCloud(points=centroids, intensity=intensity)


def voxel_downsample_open3d(pcd: o3d.geometry.PointCloud, voxel_size: float = 0.1) -> o3d.geometry.PointCloud:
    """
    Same grid and centroids as ``voxel_downsample`` for an Open3D cloud.
    """
    centroids, _ = _voxel_centroids(np.asarray(pcd.points), voxel_size)
    out = o3d.geometry.PointCloud()
    out.points = o3d.utility.Vector3dVector(centroids)
    return out
