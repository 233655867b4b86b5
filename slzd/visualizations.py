"""Plotly figure builders for segmentation results and landing zone candidates"""

from typing import List

import numpy as np
import plotly.graph_objects as go

from slzd.errors import InvalidParameter
from slzd.models import PointCloud, SegmentationResult, cloud_xyz
from slzd.zones import SLZDCandidate

DISPLAY_MODES = ("inlier_cloud", "outlier_cloud", "both")

INLIER_COLOR = "rgb(0, 255, 0)"
OUTLIER_COLOR = "rgb(255, 0, 0)"


def segmentation_figure(result: SegmentationResult, cloud: str = "both") -> go.Figure:
    """
    3D scatter of a segmentation result: inliers green, outliers red.
    Works for either result family; empty clouds are skipped.
    """
    if cloud not in DISPLAY_MODES:
        raise InvalidParameter(f"Unknown display mode {cloud!r}, expected one of {DISPLAY_MODES}")

    fig = go.Figure()
    outlier = cloud_xyz(result.outlier_cloud)
    inlier = cloud_xyz(result.inlier_cloud)

    if len(outlier) > 0 and cloud in ("outlier_cloud", "both"):
        fig.add_trace(go.Scatter3d(
            x=outlier[:, 0], y=outlier[:, 1], z=outlier[:, 2],
            mode="markers",
            marker=dict(size=2, color=OUTLIER_COLOR, opacity=0.6),
            name=f"Non-plane ({len(outlier):,})",
        ))
    if len(inlier) > 0 and cloud in ("inlier_cloud", "both"):
        fig.add_trace(go.Scatter3d(
            x=inlier[:, 0], y=inlier[:, 1], z=inlier[:, 2],
            mode="markers",
            marker=dict(size=3, color=INLIER_COLOR, opacity=0.6),
            name=f"Plane ({len(inlier):,})",
        ))
    fig.update_layout(
        title=f"{result.method} result" if result.method else None,
        scene=dict(aspectmode="data"),
        height=600,
        margin=dict(l=0, r=0, t=30, b=0),
        paper_bgcolor="white",
    )
    return fig


def _circle(center: np.ndarray, radius: float, n: int = 48):
    theta = np.linspace(0, 2 * np.pi, n)
    return center[0] + radius * np.cos(theta), center[1] + radius * np.sin(theta)


def candidates_figure(cloud: PointCloud, candidates: List[SLZDCandidate]) -> go.Figure:
    """
    Bird's eye view (XY) of the cloud with each scored candidate drawn as a
    disc of its patch radius, coloured by score.
    """
    fig = go.Figure()

    if len(cloud) > 0:
        fig.add_trace(go.Scattergl(
            x=cloud.points[:, 0], y=cloud.points[:, 1],
            mode="markers",
            marker=dict(size=2, color="#666666", opacity=0.5),
            name="Points",
            hoverinfo="skip",
        ))

    for rank, candidate in enumerate(candidates):
        if candidate.patch_radius <= 0:
            continue
        xs, ys = _circle(candidate.seed, candidate.patch_radius)
        # Green for score 1, red for score 0
        score = float(np.clip(candidate.score, 0.0, 1.0))
        color = f"rgb({int(255 * (1 - score))}, {int(255 * score)}, 0)"
        fig.add_trace(go.Scatter(
            x=xs, y=ys,
            mode="lines",
            line=dict(color=color, width=2),
            fill="toself",
            fillcolor=color.replace("rgb", "rgba").replace(")", ", 0.15)"),
            name=f"#{rank + 1} score {candidate.score:.2f}",
            hovertemplate=(
                f"score {candidate.score:.3f}<br>"
                f"radius {candidate.patch_radius:.2f} m<br>"
                f"roughness {candidate.roughness:.3f}<br>"
                f"relief {candidate.relief:.3f}<extra></extra>"
            ),
        ))

    fig.update_layout(
        xaxis=dict(title="X (m)", scaleanchor="y"),
        yaxis=dict(title="Y (m)"),
        height=650,
        margin=dict(l=50, r=20, t=20, b=50),
    )
    return fig
