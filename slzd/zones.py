"""
Safe landing zone candidates: seed selection, patch growth and scoring.

A candidate is created per seed by ``grow_patch``, filled in once by
``score_candidate`` and read-only afterwards.
"""

import math
from dataclasses import FrozenInstanceError, dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np
from scipy.spatial import KDTree

from slzd.errors import InvalidParameter
from slzd.models import PlaneModel, PointCloud
from slzd.preprocessing import voxel_downsample
from slzd.ransac import fit_plane_lstsq

# (data_confidence, roughness, relief, patch_radius) -> score
ScorePolicy = Callable[[float, float, float, float], float]


@dataclass(eq=False)
class SLZDCandidate:
    seed: np.ndarray = field(default_factory=lambda: np.zeros(3))  # x, y, z; z is advisory
    surface: PointCloud = field(default_factory=PointCloud.empty)
    data_confidence: float = 0.0
    roughness: float = 0.0
    relief: float = 0.0
    score: float = 0.0
    patch_radius: float = 0.0
    plane_model: Optional[PlaneModel] = None
    scored: bool = False

    def __post_init__(self):
        object.__setattr__(self, "seed", np.asarray(self.seed, dtype=np.float64).reshape(3))

    def __setattr__(self, name, value):
        if getattr(self, "scored", False):
            raise FrozenInstanceError(f"cannot assign to field {name!r} of a scored candidate")
        super().__setattr__(name, value)

    @property
    def seed_key(self) -> Tuple[float, float]:
        """XY position identifying the seed."""
        return (round(float(self.seed[0]), 6), round(float(self.seed[1]), 6))


@dataclass
class GrowthParams:
    """Parameters for growing a disc-shaped patch around a seed."""
    initial_radius: float = 1.0
    radius_step: float = 0.5
    max_radius: float = 5.0
    min_points: int = 10
    max_slope_deg: float = 10.0
    max_roughness: float = 0.1

    def validate(self) -> None:
        if self.initial_radius <= 0:
            raise InvalidParameter(f"initial_radius must be > 0, got {self.initial_radius}")
        if self.radius_step <= 0:
            raise InvalidParameter(f"radius_step must be > 0, got {self.radius_step}")
        if self.max_radius < self.initial_radius:
            raise InvalidParameter(
                f"max_radius ({self.max_radius}) must be >= initial_radius ({self.initial_radius})"
            )
        if self.min_points < 3:
            raise InvalidParameter(f"min_points must be >= 3, got {self.min_points}")
        if not 0 <= self.max_slope_deg <= 90:
            raise InvalidParameter(f"max_slope_deg must be in [0, 90], got {self.max_slope_deg}")
        if self.max_roughness < 0:
            raise InvalidParameter(f"max_roughness must be >= 0, got {self.max_roughness}")


@dataclass
class WeightedScorePolicy:
    """
    Default score in [0, 1]:

        confidence * min(r / target_radius, 1)
                   * exp(-roughness / roughness_scale)
                   * exp(-relief / relief_scale)

    Increases with confidence and radius, decreases with roughness and relief.
    """
    target_radius: float = 5.0
    roughness_scale: float = 0.05
    relief_scale: float = 0.2

    def __post_init__(self):
        for name in ("target_radius", "roughness_scale", "relief_scale"):
            if getattr(self, name) <= 0:
                raise InvalidParameter(f"{name} must be > 0, got {getattr(self, name)}")

    def __call__(self, data_confidence: float, roughness: float, relief: float, patch_radius: float) -> float:
        size_term = min(patch_radius / self.target_radius, 1.0)
        return (
            data_confidence
            * size_term
            * math.exp(-roughness / self.roughness_scale)
            * math.exp(-relief / self.relief_scale)
        )


def plane_slope_deg(plane: PlaneModel) -> float:
    """Angle between the plane normal and the vertical axis."""
    n = plane.normal / np.linalg.norm(plane.normal)
    return math.degrees(math.acos(min(abs(float(n[2])), 1.0)))


def select_seeds(cloud: PointCloud, spacing: float) -> np.ndarray:
    """
    One seed per occupied ``spacing``-sized cell: the cell centroid.
    """
    return voxel_downsample(cloud, voxel_size=spacing).points


def grow_patch(
    cloud: PointCloud,
    seed: np.ndarray,
    params: GrowthParams,
    tree: Optional[KDTree] = None,
) -> SLZDCandidate:
    """
    Grow a disc (in XY) around ``seed`` while the enclosed points stay flat.

    The radius increases from ``initial_radius`` in ``radius_step`` increments.
    Radii with fewer than ``min_points`` points are skipped; the first radius
    whose plane is too steep or too rough ends the growth. The candidate
    holds the last accepted patch, or an empty surface if none was accepted.
    """
    params.validate()
    seed = np.asarray(seed, dtype=np.float64).reshape(3)
    if len(cloud) == 0:
        return SLZDCandidate(seed=seed)
    if tree is None:
        tree = KDTree(cloud.points[:, :2])

    n_steps = int(math.floor((params.max_radius - params.initial_radius) / params.radius_step + 1e-9))
    radii = params.initial_radius + params.radius_step * np.arange(n_steps + 1)

    accepted = None
    for radius in radii:
        indices = tree.query_ball_point(seed[:2], radius)
        if len(indices) < params.min_points:
            continue

        patch = cloud.points[indices]
        try:
            plane = fit_plane_lstsq(patch)
        except InvalidParameter:
            break
        if plane_slope_deg(plane) > params.max_slope_deg:
            break
        if np.std(plane.signed_distance(patch)) > params.max_roughness:
            break
        accepted = (np.sort(indices), plane)

    if accepted is None:
        return SLZDCandidate(seed=seed)

    indices, plane = accepted
    return SLZDCandidate(seed=seed, surface=cloud.select(indices), plane_model=plane)


def compute_metrics(
    surface: PointCloud,
    plane: Optional[PlaneModel],
    seed: np.ndarray,
    expected_density: float,
) -> Tuple[float, float, float, float]:
    """
    Returns (data_confidence, roughness, relief, patch_radius).

    patch_radius is the XY extent of the surface around the seed,
    roughness the std of signed plane distances, relief their peak-to-peak,
    and data_confidence the observed over expected point count, capped at 1.
    """
    if expected_density <= 0:
        raise InvalidParameter(f"expected_density must be > 0, got {expected_density}")
    if surface.is_empty or plane is None:
        return 0.0, 0.0, 0.0, 0.0

    xyz = surface.points
    patch_radius = float(np.max(np.linalg.norm(xyz[:, :2] - seed[:2], axis=1)))

    residuals = plane.signed_distance(xyz)
    roughness = float(np.std(residuals))
    relief = float(residuals.max() - residuals.min())

    if patch_radius <= 0:
        return 0.0, roughness, relief, patch_radius

    expected = math.pi * patch_radius ** 2 * expected_density
    data_confidence = min(1.0, len(xyz) / expected)
    return data_confidence, roughness, relief, patch_radius


def score_candidate(
    candidate: SLZDCandidate,
    policy: Optional[ScorePolicy] = None,
    expected_density: float = 10.0,
) -> SLZDCandidate:
    """
    Fill metrics and score of an unscored candidate, then freeze it.
    A surface without a plane gets a least-squares plane first.
    """
    if candidate.scored:
        raise InvalidParameter("Candidate has already been scored")
    policy = policy or WeightedScorePolicy()

    if candidate.plane_model is None and len(candidate.surface) >= 3:
        candidate.plane_model = fit_plane_lstsq(candidate.surface.points)

    data_confidence, roughness, relief, patch_radius = compute_metrics(
        candidate.surface, candidate.plane_model, candidate.seed, expected_density
    )
    candidate.data_confidence = data_confidence
    candidate.roughness = roughness
    candidate.relief = relief
    candidate.patch_radius = patch_radius
    candidate.score = float(policy(data_confidence, roughness, relief, patch_radius))
    candidate.scored = True
    return candidate


def find_candidates(
    cloud: PointCloud,
    seeds: np.ndarray,
    params: GrowthParams,
    policy: Optional[ScorePolicy] = None,
    expected_density: float = 10.0,
) -> List[SLZDCandidate]:
    """Grow and score one candidate per seed over ``cloud``."""
    tree = KDTree(cloud.points[:, :2]) if len(cloud) else None
    candidates = []
    for seed in np.asarray(seeds).reshape(-1, 3):
        candidate = grow_patch(cloud, seed, params, tree=tree)
        candidates.append(score_candidate(candidate, policy, expected_density))
    return candidates


def best_per_seed(candidates: Iterable[SLZDCandidate]) -> List[SLZDCandidate]:
    """Keep the highest-scoring candidate for each seed position."""
    best = {}
    for candidate in candidates:
        current = best.get(candidate.seed_key)
        if current is None or candidate.score > current.score:
            best[candidate.seed_key] = candidate
    return list(best.values())


def rank_candidates(candidates: Iterable[SLZDCandidate]) -> List[SLZDCandidate]:
    return sorted(candidates, key=lambda c: c.score, reverse=True)
