import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np
import open3d as o3d
from plyfile import PlyData, PlyParseError

from slzd.errors import LoadError
from slzd.models import PointCloud

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloudPath:
    """Input variant: a point cloud file on disk."""
    path: Path

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path))


@dataclass(frozen=True, eq=False)
class CloudHandle:
    """Input variant: an already-materialized cloud."""
    cloud: PointCloud


CloudInput = Union[CloudPath, CloudHandle]


def load_kitti_txt(file_path: Union[str, Path]) -> PointCloud:
    """
    Load a KITTI LiDAR point cloud from a .txt file (x y z [intensity] per row)
    """
    data = np.loadtxt(file_path, dtype=np.float32, ndmin=2)
    return PointCloud.from_array(data)


def load_kitti_bin(file_path: Union[str, Path]) -> PointCloud:
    """
    Load a KITTI velodyne .bin scan (float32 x, y, z, intensity)
    """
    data = np.fromfile(file_path, dtype=np.float32)
    if data.size % 4 != 0:
        raise ValueError(f"{data.size} floats is not a whole number of XYZI records")
    return PointCloud.from_array(data.reshape(-1, 4))


def load_npy(file_path: Union[str, Path]) -> PointCloud:
    return PointCloud.from_array(np.load(file_path, allow_pickle=False))


def _declared_pcd_points(file_path: Path) -> Optional[int]:
    """Point count from the PCD header, or None if no header is found."""
    with open(file_path, "rb") as f:
        for raw_line in f:
            line = raw_line.decode("ascii", errors="replace").strip()
            if line.startswith("POINTS"):
                return int(line.split()[1])
            if line.startswith("DATA"):
                break
    return None


def load_pcd(file_path: Union[str, Path]) -> PointCloud:
    """
    Load a .pcd file through Open3D's tensor reader, keeping an 'intensity'
    field when present.
    Open3D returns an empty cloud on parse failure, so the header decides
    whether an empty result is genuine.
    """
    file_path = Path(file_path)
    pcd = o3d.t.io.read_point_cloud(
        str(file_path),
        format="pcd",
        remove_nan_points=False,
        remove_infinite_points=False,
    )
    if "positions" in pcd.point:
        points = pcd.point["positions"].numpy().astype(np.float64).reshape(-1, 3)
    else:
        points = np.zeros((0, 3))

    if len(points) == 0:
        declared = _declared_pcd_points(file_path)
        if declared is None or declared != 0:
            raise ValueError(f"Open3D could not parse {file_path.name}")
        return PointCloud(points=points)

    intensity = None
    if "intensity" in pcd.point:
        intensity = pcd.point["intensity"].numpy().astype(np.float32).reshape(-1)
    return PointCloud(points=points, intensity=intensity)


def load_ply(file_path: Union[str, Path]) -> PointCloud:
    """
    Load a .ply file, keeping a per-vertex 'intensity' property when present
    """
    ply = PlyData.read(str(file_path))
    vertex = ply["vertex"]
    names = {prop.name for prop in vertex.properties}

    xyz = np.column_stack([vertex["x"], vertex["y"], vertex["z"]]).astype(np.float64)
    intensity = None
    if "intensity" in names:
        intensity = np.asarray(vertex["intensity"], dtype=np.float32)
    return PointCloud(points=xyz.reshape(-1, 3), intensity=intensity)


READERS: dict[str, Callable[[Path], PointCloud]] = {
    ".txt": load_kitti_txt,
    ".bin": load_kitti_bin,
    ".npy": load_npy,
    ".pcd": load_pcd,
    ".ply": load_ply,
}


def read_cloud_file(file_path: Union[str, Path]) -> PointCloud:
    """
    Parse a point cloud file by suffix. Every failure surfaces as LoadError.
    """
    file_path = Path(file_path)

    if not file_path.is_file():
        raise LoadError(f"Point cloud file not found: {file_path}", path=file_path)

    reader = READERS.get(file_path.suffix.lower())
    if reader is None:
        raise LoadError(f"Unsupported point cloud format: {file_path.suffix!r}", path=file_path)

    try:
        return reader(file_path)
    except (OSError, ValueError, KeyError, RuntimeError, PlyParseError) as exc:
        raise LoadError(f"Failed to load {file_path}: {exc}", path=file_path) from exc


def load_cloud(source: CloudInput, logger: Optional[logging.Logger] = None) -> PointCloud:
    """
    Resolve a path or an existing cloud into one in-memory cloud.
    Handles are returned as-is (no copy, no I/O). Empty clouds are not an
    error here.
    """
    logger = logger or LOGGER

    if isinstance(source, CloudPath):
        cloud = read_cloud_file(source.path)
        logger.info("Loaded cloud with %d points from %s", len(cloud), source.path)
        return cloud

    if isinstance(source, CloudHandle):
        logger.info("Using provided cloud with %d points", len(source.cloud))
        return source.cloud

    raise TypeError(
        f"load_cloud expects CloudPath or CloudHandle, got {type(source).__name__}"
    )
