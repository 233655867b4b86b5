"""
Core data model: point clouds, plane models and segmentation results for the
two supported representation families.

Family A is the native ``PointCloud`` (coordinates plus optional intensity).
Family B is ``open3d.geometry.PointCloud`` (coordinates only).
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np
import open3d as o3d

from slzd.errors import InvalidParameter


@dataclass(eq=False)
class PointCloud:
    """
    Ordered XYZ(I) point cloud.

    ``height`` is the row-major organization hint; unorganized clouds use 1.
    Arrays are copied on construction so every cloud owns its data.
    """
    points: np.ndarray
    intensity: Optional[np.ndarray] = None
    height: int = 1

    def __post_init__(self):
        points = np.array(self.points, dtype=np.float64)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise InvalidParameter(f"points must have shape (N, 3), got {points.shape}")
        self.points = points

        if self.intensity is not None:
            intensity = np.array(self.intensity, dtype=np.float32).reshape(-1)
            if len(intensity) != len(points):
                raise InvalidParameter(
                    f"intensity length {len(intensity)} != point count {len(points)}"
                )
            self.intensity = intensity

        if self.height < 1:
            raise InvalidParameter(f"height must be >= 1, got {self.height}")
        if len(points) % self.height != 0:
            raise InvalidParameter(
                f"{len(points)} points cannot be organized into rows of height {self.height}"
            )

    @classmethod
    def empty(cls, with_intensity: bool = False) -> "PointCloud":
        return cls(
            points=np.zeros((0, 3)),
            intensity=np.zeros(0, dtype=np.float32) if with_intensity else None,
        )

    @classmethod
    def from_array(cls, data: np.ndarray) -> "PointCloud":
        """Build from an (N, 3) or (N, 4+) array; the 4th column is intensity."""
        data = np.asarray(data)
        if data.size == 0:
            return cls.empty()
        if data.ndim != 2 or data.shape[1] < 3:
            raise InvalidParameter(f"expected (N, 3) or (N, 4) array, got {data.shape}")
        intensity = data[:, 3] if data.shape[1] > 3 else None
        return cls(points=data[:, :3], intensity=intensity)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def width(self) -> int:
        return len(self.points) // self.height

    @property
    def is_dense(self) -> bool:
        return bool(np.isfinite(self.points).all())

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    @property
    def has_intensity(self) -> bool:
        return self.intensity is not None

    def select(self, mask_or_indices: np.ndarray) -> "PointCloud":
        """Return a new unorganized cloud holding the selected points."""
        intensity = self.intensity[mask_or_indices] if self.intensity is not None else None
        return PointCloud(points=self.points[mask_or_indices], intensity=intensity)

    def copy(self) -> "PointCloud":
        return PointCloud(points=self.points, intensity=self.intensity, height=self.height)


@dataclass(eq=False)
class PlaneModel:
    """
    Represents a 3D plane: normal * point + d = 0

    The normal is a valid, not necessarily unit, direction.
    ``source`` records which fitting method produced the coefficients.
    """
    normal: np.ndarray
    d: float
    source: str = ""

    def __post_init__(self):
        self.normal = np.asarray(self.normal, dtype=np.float64).reshape(3)
        self.d = float(self.d)
        if not (np.isfinite(self.normal).all() and np.isfinite(self.d)):
            raise InvalidParameter("Plane coefficients must be finite")
        if np.linalg.norm(self.normal) < 1e-12:
            raise InvalidParameter("Plane normal must be non-zero")

    @classmethod
    def from_coefficients(cls, coefficients: Sequence[float], source: str = "") -> "PlaneModel":
        coefficients = np.asarray(coefficients, dtype=np.float64).reshape(-1)
        if len(coefficients) != 4:
            raise InvalidParameter(f"Expected 4 plane coefficients, got {len(coefficients)}")
        return cls(normal=coefficients[:3], d=coefficients[3], source=source)

    @property
    def coefficients(self) -> np.ndarray:
        return np.append(self.normal, self.d)

    def normalized(self) -> "PlaneModel":
        norm = np.linalg.norm(self.normal)
        return PlaneModel(normal=self.normal / norm, d=self.d / norm, source=self.source)

    def signed_distance(self, points: np.ndarray) -> np.ndarray:
        norm = np.linalg.norm(self.normal)
        return (np.dot(points[:, :3], self.normal) + self.d) / norm

    def distance_to_points(self, points: np.ndarray) -> np.ndarray:
        return np.abs(self.signed_distance(points))

    @property
    def equation_string(self) -> str:
        a, b, c, d = self.coefficients
        return f"{a:.4f}x + {b:.4f}y + {c:.4f}z + {d:.4f} = 0"


def _empty_open3d() -> o3d.geometry.PointCloud:
    return o3d.geometry.PointCloud()


@dataclass
class CloudSegmentation:
    """Segmentation result over native PointClouds (family A)."""
    downsampled_cloud: PointCloud = field(default_factory=PointCloud.empty)
    inlier_cloud: PointCloud = field(default_factory=PointCloud.empty)
    outlier_cloud: PointCloud = field(default_factory=PointCloud.empty)
    method: str = ""
    plane_model: Optional[PlaneModel] = None


@dataclass
class Open3DSegmentation:
    """Segmentation result over Open3D point clouds (family B)."""
    downsampled_cloud: o3d.geometry.PointCloud = field(default_factory=_empty_open3d)
    inlier_cloud: o3d.geometry.PointCloud = field(default_factory=_empty_open3d)
    outlier_cloud: o3d.geometry.PointCloud = field(default_factory=_empty_open3d)
    method: str = ""
    plane_model: Optional[PlaneModel] = None


SegmentationResult = Union[CloudSegmentation, Open3DSegmentation]


def cloud_xyz(cloud: Union[PointCloud, o3d.geometry.PointCloud]) -> np.ndarray:
    """(N, 3) coordinates of a cloud from either family."""
    if isinstance(cloud, PointCloud):
        return cloud.points
    return np.asarray(cloud.points, dtype=np.float64).reshape(-1, 3)


def _coordinate_multiset(xyz: np.ndarray) -> Counter:
    return Counter(map(tuple, xyz.tolist()))


def check_partition(result: SegmentationResult) -> None:
    """
    Verify that inliers and outliers are disjoint subsets of the downsampled
    cloud (coordinate multisets) and are not both empty.
    """
    downsampled = _coordinate_multiset(cloud_xyz(result.downsampled_cloud))
    inliers = _coordinate_multiset(cloud_xyz(result.inlier_cloud))
    outliers = _coordinate_multiset(cloud_xyz(result.outlier_cloud))

    if not inliers and not outliers:
        raise InvalidParameter("Inlier and outlier clouds are both empty")
    if inliers - downsampled:
        raise InvalidParameter("Inlier cloud is not a subset of the downsampled cloud")
    if outliers - downsampled:
        raise InvalidParameter("Outlier cloud is not a subset of the downsampled cloud")
    # Disjoint as multisets: together they may not exceed the downsampled cloud.
    if (inliers + outliers) - downsampled:
        raise InvalidParameter("Inlier and outlier clouds overlap")
