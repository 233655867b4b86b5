"""Shared synthetic clouds for the test suite."""

import numpy as np
import pytest

from slzd.models import PointCloud


def make_grid(half_size: float, spacing: float, z: float = 0.0) -> np.ndarray:
    """Flat square grid of points centred on the origin."""
    ticks = np.arange(-half_size, half_size + spacing / 2, spacing)
    xx, yy = np.meshgrid(ticks, ticks)
    return np.column_stack([xx.ravel(), yy.ravel(), np.full(xx.size, z)])


def make_box(x0, x1, y0, y1, z0, z1, spacing: float) -> np.ndarray:
    """Solid block of points, used as an obstacle standing on the ground."""
    xs = np.arange(x0, x1 + spacing / 2, spacing)
    ys = np.arange(y0, y1 + spacing / 2, spacing)
    zs = np.arange(z0, z1 + spacing / 2, spacing)
    xx, yy, zz = np.meshgrid(xs, ys, zs)
    return np.column_stack([xx.ravel(), yy.ravel(), zz.ravel()])


@pytest.fixture
def cube_corners() -> np.ndarray:
    # Corners of a 2x2x2 cube centred at the origin
    return np.array([[x, y, z] for x in (-1, 1) for y in (-1, 1) for z in (-1, 1)], dtype=np.float64)


@pytest.fixture
def ground_scene() -> PointCloud:
    """10 x 10 m flat ground (0.2 m spacing) with a 1 m tall obstacle."""
    ground = make_grid(5.0, 0.2)
    obstacle = make_box(2.0, 3.0, 2.0, 3.0, 0.6, 1.4, 0.2)
    points = np.vstack([ground, obstacle])
    intensity = np.concatenate([np.full(len(ground), 10.0), np.full(len(obstacle), 200.0)])
    return PointCloud(points=points, intensity=intensity)
