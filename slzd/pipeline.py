import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from slzd.bridge import cloud_to_open3d, to_cloud, transform_plane_model
from slzd.data_loader import CloudInput, load_cloud
from slzd.errors import InvalidParameter
from slzd.models import CloudSegmentation, PointCloud
from slzd.preprocessing import voxel_downsample
from slzd.ransac import segment_plane, segment_plane_open3d
from slzd.zones import (
    GrowthParams,
    SLZDCandidate,
    WeightedScorePolicy,
    best_per_seed,
    find_candidates,
    rank_candidates,
    select_seeds,
)

LOGGER = logging.getLogger(__name__)

BACKENDS = ("numpy", "open3d")


@dataclass
class PipelineParams:
    """Parameters for the SLZD pipeline."""
    # Preprocessing
    voxel_size: float = 0.1
    # RANSAC
    backend: str = "numpy"
    ransac_iters: int = 100
    dist_thresh: float = 0.2
    normal_thresh: float = 0.9
    random_seed: Optional[int] = None
    # Zone growth
    seed_spacing: float = 2.0
    initial_radius: float = 1.0
    radius_step: float = 0.5
    max_radius: float = 5.0
    min_points: int = 10
    max_slope_deg: float = 10.0
    max_roughness: float = 0.1
    # Scoring
    expected_density: float = 10.0
    target_radius: float = 5.0
    roughness_scale: float = 0.05
    relief_scale: float = 0.2

    def growth_params(self) -> GrowthParams:
        return GrowthParams(
            initial_radius=self.initial_radius,
            radius_step=self.radius_step,
            max_radius=self.max_radius,
            min_points=self.min_points,
            max_slope_deg=self.max_slope_deg,
            max_roughness=self.max_roughness,
        )

    def score_policy(self) -> WeightedScorePolicy:
        return WeightedScorePolicy(
            target_radius=self.target_radius,
            roughness_scale=self.roughness_scale,
            relief_scale=self.relief_scale,
        )


def validate_params(params: PipelineParams) -> None:
    """Raise InvalidParameter on values the pipeline cannot run with."""
    if not params.voxel_size > 0:
        raise InvalidParameter(f"voxel_size must be > 0, got {params.voxel_size}")
    if params.backend not in BACKENDS:
        raise InvalidParameter(f"Unknown backend {params.backend!r}, expected one of {BACKENDS}")
    if params.ransac_iters < 1:
        raise InvalidParameter(f"ransac_iters must be >= 1, got {params.ransac_iters}")
    if not params.dist_thresh > 0:
        raise InvalidParameter(f"dist_thresh must be > 0, got {params.dist_thresh}")
    if not 0 <= params.normal_thresh <= 1:
        raise InvalidParameter(f"normal_thresh must be in [0, 1], got {params.normal_thresh}")
    if not params.seed_spacing > 0:
        raise InvalidParameter(f"seed_spacing must be > 0, got {params.seed_spacing}")
    if not params.expected_density > 0:
        raise InvalidParameter(f"expected_density must be > 0, got {params.expected_density}")
    params.growth_params().validate()
    params.score_policy()  # rejects non-positive scales


@dataclass
class SLZDResult:
    """Result of running the pipeline on one cloud."""
    raw_count: int
    segmentation: CloudSegmentation
    candidates: List[SLZDCandidate] = field(default_factory=list)

    @property
    def downsampled_count(self) -> int:
        return len(self.segmentation.downsampled_cloud)

    @property
    def best(self) -> Optional[SLZDCandidate]:
        return self.candidates[0] if self.candidates else None


def segment(cloud: PointCloud, params: PipelineParams, logger: Optional[logging.Logger] = None) -> CloudSegmentation:
    """
    Run plane segmentation with the configured backend and return a
    family-A result.
    """
    if params.backend == "open3d":
        result = segment_plane_open3d(
            cloud_to_open3d(cloud),
            num_iterations=params.ransac_iters,
            distance_threshold=params.dist_thresh,
            normal_threshold=params.normal_thresh,
            seed=params.random_seed,
        )
        converted = to_cloud(result, logger=logger)
        # Both clouds live in the same frame: identity transfer
        if result.plane_model is not None:
            converted.plane_model = transform_plane_model(result.plane_model, np.eye(4))
        return converted

    return segment_plane(
        cloud,
        num_iterations=params.ransac_iters,
        distance_threshold=params.dist_thresh,
        normal_threshold=params.normal_thresh,
        seed=params.random_seed,
    )


def run_pipeline(
    source: CloudInput,
    params: PipelineParams,
    logger: Optional[logging.Logger] = None,
) -> SLZDResult:
    """
    Run the full pipeline on a single cloud.
    """
    logger = logger or LOGGER
    validate_params(params)

    # Load
    raw = load_cloud(source, logger=logger)

    # Downsample
    downsampled = voxel_downsample(raw, voxel_size=params.voxel_size)
    logger.info("Downsampled %d -> %d points (voxel %.3f)", len(raw), len(downsampled), params.voxel_size)

    # Plane segmentation
    segmentation = segment(downsampled, params, logger=logger)
    logger.info(
        "%s: %d inliers, %d outliers, plane %s",
        segmentation.method,
        len(segmentation.inlier_cloud),
        len(segmentation.outlier_cloud),
        segmentation.plane_model.equation_string if segmentation.plane_model else "n/a",
    )

    if segmentation.plane_model is None:
        logger.warning("No landing plane found; no candidate zones")

    # Candidate zones
    seeds = select_seeds(segmentation.inlier_cloud, spacing=params.seed_spacing)
    candidates = find_candidates(
        segmentation.downsampled_cloud,
        seeds,
        params.growth_params(),
        policy=params.score_policy(),
        expected_density=params.expected_density,
    )
    ranked = rank_candidates(best_per_seed(candidates))
    logger.info("Scored %d candidate zones from %d seeds", len(ranked), len(seeds))

    return SLZDResult(
        raw_count=len(raw),
        segmentation=segmentation,
        candidates=ranked,
    )
