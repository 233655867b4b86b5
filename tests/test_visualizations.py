"""Tests for slzd.visualizations: figure construction only, nothing is rendered."""

import numpy as np
import pytest

from slzd.bridge import to_open3d
from slzd.errors import InvalidParameter
from slzd.models import CloudSegmentation, PointCloud
from slzd.visualizations import candidates_figure, segmentation_figure
from slzd.zones import SLZDCandidate

POINTS = np.arange(30, dtype=np.float64).reshape(10, 3)


def _result(n_inliers: int) -> CloudSegmentation:
    cloud = PointCloud(points=POINTS)
    mask = np.arange(10) < n_inliers
    return CloudSegmentation(
        downsampled_cloud=cloud,
        inlier_cloud=cloud.select(mask),
        outlier_cloud=cloud.select(~mask),
        method="RANSAC",
    )


@pytest.mark.parametrize("mode, n_traces", [("both", 2), ("inlier_cloud", 1), ("outlier_cloud", 1)])
def test_segmentation_figure_modes(mode, n_traces):
    fig = segmentation_figure(_result(4), cloud=mode)
    assert len(fig.data) == n_traces


def test_segmentation_figure_colors():
    fig = segmentation_figure(_result(4))
    colors = {trace.name.split()[0]: trace.marker.color for trace in fig.data}
    assert colors["Plane"] == "rgb(0, 255, 0)"
    assert colors["Non-plane"] == "rgb(255, 0, 0)"


def test_segmentation_figure_skips_empty_cloud():
    fig = segmentation_figure(_result(0), cloud="inlier_cloud")
    assert len(fig.data) == 0


def test_segmentation_figure_accepts_open3d_result():
    fig = segmentation_figure(to_open3d(_result(4)))
    assert len(fig.data) == 2


def test_segmentation_figure_rejects_unknown_mode():
    with pytest.raises(InvalidParameter):
        segmentation_figure(_result(4), cloud="everything")


def test_candidates_figure_draws_scored_discs():
    candidates = [
        SLZDCandidate(seed=[0.0, 0.0, 0.0], score=0.8, patch_radius=2.0),
        SLZDCandidate(seed=[5.0, 5.0, 0.0]),  # no patch: not drawn
    ]
    fig = candidates_figure(PointCloud(points=POINTS), candidates)
    assert len(fig.data) == 2  # points + one disc
    assert fig.data[1].name.startswith("#1")
