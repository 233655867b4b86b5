import logging
from typing import Optional, Tuple

import numpy as np
import open3d as o3d

from slzd.errors import InvalidParameter
from slzd.models import CloudSegmentation, Open3DSegmentation, PlaneModel, PointCloud

LOGGER = logging.getLogger(__name__)


def fit_plane_from_points(p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> PlaneModel:
    """
    Fit a plane through three 3D points.
    """
    v1 = p2 - p1
    v2 = p3 - p1

    normal = np.cross(v1, v2)

    norm = np.linalg.norm(normal)
    if norm < 1e-10:
        raise ValueError("Points are collinear")

    normal = normal / norm

    d = -np.dot(normal, p1)

    return PlaneModel(normal=normal, d=d, source="RANSAC")


def fit_plane_lstsq(points: np.ndarray) -> PlaneModel:
    """
    Least-squares plane through a point set (SVD of the centred points).
    The normal is unit length and oriented towards +z.
    """
    xyz = np.asarray(points, dtype=np.float64)[:, :3]
    if len(xyz) < 3:
        raise InvalidParameter(f"Need at least 3 points to fit a plane, got {len(xyz)}")

    centroid = xyz.mean(axis=0)
    _, singular_values, vh = np.linalg.svd(xyz - centroid, full_matrices=False)
    if singular_values[1] < 1e-10:
        raise InvalidParameter("Points are collinear")

    normal = vh[-1]
    if normal[2] < 0:
        normal = -normal

    return PlaneModel(normal=normal, d=-np.dot(normal, centroid), source="least-squares")


def ransac_plane(
    points: np.ndarray,
    num_iterations: int = 100,
    distance_threshold: float = 0.2,
    normal_threshold: float = 0.9,
    seed: Optional[int] = None,
) -> Tuple[Optional[PlaneModel], np.ndarray]:
    """
    Detect a near-horizontal plane using RANSAC.
    ``normal_threshold`` is the minimum |n_z| of an accepted plane; 0 accepts
    any orientation. If no sample yields an acceptable plane the model is
    None and the inlier mask is all False.
    """
    xyz = points[:, :3]
    n_points = len(xyz)

    if n_points < 3:
        raise InvalidParameter(f"Need at least 3 points, got {n_points}")

    rng = np.random.default_rng(seed)

    best_plane = None
    best_inlier_count = 0
    best_inlier_mask = np.zeros(n_points, dtype=bool)

    for _ in range(num_iterations):
        sample_indices = rng.choice(n_points, 3, replace=False)
        p1, p2, p3 = xyz[sample_indices]

        try:
            plane = fit_plane_from_points(p1, p2, p3)
        except ValueError:
            continue

        if abs(plane.normal[2]) < normal_threshold:
            continue

        if plane.normal[2] < 0:
            plane.normal = -plane.normal
            plane.d = -plane.d

        distances = plane.distance_to_points(xyz)
        inlier_mask = distances < distance_threshold
        inlier_count = np.sum(inlier_mask)

        if inlier_count > best_inlier_count:
            best_inlier_count = inlier_count
            best_plane = plane
            best_inlier_mask = inlier_mask

    if best_plane is None:
        LOGGER.warning("No plane with |n_z| >= %.2f after %d iterations", normal_threshold, num_iterations)

    return best_plane, best_inlier_mask


def segment_plane(
    cloud: PointCloud,
    num_iterations: int = 100,
    distance_threshold: float = 0.2,
    normal_threshold: float = 0.9,
    seed: Optional[int] = None,
) -> CloudSegmentation:
    """
    Split a (downsampled) cloud into plane inliers and outliers.
    Without an acceptable plane every point is an outlier and
    ``plane_model`` is None.
    """
    plane, inlier_mask = ransac_plane(
        cloud.points,
        num_iterations=num_iterations,
        distance_threshold=distance_threshold,
        normal_threshold=normal_threshold,
        seed=seed,
    )
    return CloudSegmentation(
        downsampled_cloud=cloud.copy(),
        inlier_cloud=cloud.select(inlier_mask),
        outlier_cloud=cloud.select(~inlier_mask),
        method="RANSAC",
        plane_model=plane,
    )


def _open3d_plane(pcd: o3d.geometry.PointCloud, distance_threshold: float, num_iterations: int):
    """One Open3D segment_plane call; (None, []) for a degenerate fit."""
    coefficients, inliers = pcd.segment_plane(
        distance_threshold=distance_threshold,
        ransac_n=3,
        num_iterations=num_iterations,
    )
    if len(inliers) == 0:
        return None, []
    try:
        plane = PlaneModel.from_coefficients(coefficients, source="open3d.segment_plane")
    except InvalidParameter:
        return None, []
    if plane.normal[2] < 0:
        plane = PlaneModel(normal=-plane.normal, d=-plane.d, source=plane.source)
    return plane, inliers


def segment_plane_open3d(
    pcd: o3d.geometry.PointCloud,
    num_iterations: int = 100,
    distance_threshold: float = 0.2,
    normal_threshold: float = 0.9,
    seed: Optional[int] = None,
    max_attempts: int = 5,
) -> Open3DSegmentation:
    """
    Open3D's RANSAC plane segmentation, packaged as an Open3DSegmentation.

    Open3D keeps the plane with the most inliers whatever its orientation.
    A plane with |n_z| below ``normal_threshold`` is set aside and the search
    repeats on the remaining points, up to ``max_attempts`` times. Without an
    acceptable plane every point is an outlier and ``plane_model`` is None.
    """
    n_points = len(pcd.points)
    if n_points < 3:
        raise InvalidParameter(f"Need at least 3 points, got {n_points}")

    if seed is not None:
        o3d.utility.random.seed(seed)

    remaining = np.arange(n_points)
    plane, inliers = None, []
    for _ in range(max_attempts):
        if len(remaining) < 3:
            break
        working = pcd.select_by_index(remaining.tolist())
        candidate, local_inliers = _open3d_plane(working, distance_threshold, num_iterations)
        if candidate is None:
            break

        local_inliers = np.asarray(local_inliers, dtype=int)
        unit = candidate.normalized()
        if abs(unit.normal[2]) >= normal_threshold:
            plane, inliers = candidate, remaining[local_inliers].tolist()
            break

        LOGGER.debug("Skipping plane %s (|n_z| %.2f)", candidate.equation_string, abs(unit.normal[2]))
        remaining = np.delete(remaining, local_inliers)

    if plane is None:
        LOGGER.warning("No plane with |n_z| >= %.2f found by Open3D", normal_threshold)

    downsampled = o3d.geometry.PointCloud(pcd)
    return Open3DSegmentation(
        downsampled_cloud=downsampled,
        inlier_cloud=pcd.select_by_index(inliers),
        outlier_cloud=pcd.select_by_index(inliers, invert=True),
        method="Open3D RANSAC",
        plane_model=plane,
    )
