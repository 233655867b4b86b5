"""Tests for slzd.zones: candidate growth, metrics and scoring."""

import math
from dataclasses import FrozenInstanceError

import numpy as np
import pytest

from conftest import make_box, make_grid
from slzd.errors import InvalidParameter
from slzd.models import PlaneModel, PointCloud
from slzd.zones import (
    GrowthParams,
    SLZDCandidate,
    WeightedScorePolicy,
    best_per_seed,
    compute_metrics,
    find_candidates,
    grow_patch,
    plane_slope_deg,
    rank_candidates,
    score_candidate,
    select_seeds,
)

FLAT = PointCloud(points=make_grid(6.0, 0.25))  # 16 points per m^2
ORIGIN = np.zeros(3)


def test_default_candidate_is_unscored():
    candidate = SLZDCandidate(seed=[1.0, 2.0, 3.0])
    assert candidate.data_confidence == 0.0
    assert candidate.roughness == 0.0
    assert candidate.relief == 0.0
    assert candidate.score == 0.0
    assert candidate.patch_radius == 0.0
    assert candidate.plane_model is None
    assert candidate.scored is False
    assert candidate.surface is not None and candidate.surface.is_empty


def test_candidate_default_construction():
    candidate = SLZDCandidate()
    np.testing.assert_array_equal(candidate.seed, np.zeros(3))
    assert candidate.surface.is_empty
    assert candidate.scored is False


def test_growth_params_validation():
    with pytest.raises(InvalidParameter):
        GrowthParams(initial_radius=0.0).validate()
    with pytest.raises(InvalidParameter):
        GrowthParams(initial_radius=3.0, max_radius=2.0).validate()
    with pytest.raises(InvalidParameter):
        GrowthParams(min_points=2).validate()


def test_grow_patch_on_flat_ground_reaches_max_radius():
    params = GrowthParams(initial_radius=1.0, radius_step=0.5, max_radius=3.0)
    candidate = grow_patch(FLAT, ORIGIN, params)

    assert not candidate.scored
    assert candidate.plane_model is not None
    assert plane_slope_deg(candidate.plane_model) == pytest.approx(0.0, abs=1e-6)
    radii = np.linalg.norm(candidate.surface.points[:, :2], axis=1)
    assert radii.max() == pytest.approx(3.0)


def test_grow_patch_stops_before_obstacle():
    obstacle = make_box(2.0, 2.5, -0.25, 0.25, 1.0, 1.0, 0.25)
    cloud = PointCloud(points=np.vstack([FLAT.points, obstacle]))
    params = GrowthParams(initial_radius=1.0, radius_step=0.5, max_radius=4.0, max_roughness=0.02)

    candidate = score_candidate(grow_patch(cloud, ORIGIN, params))

    assert candidate.patch_radius <= 1.5 + 1e-9
    assert candidate.surface.points[:, 2].max() < 0.5


def test_grow_patch_rejects_steep_surface():
    slope = make_grid(3.0, 0.25)
    slope[:, 2] = slope[:, 0]  # 45 degrees
    candidate = grow_patch(PointCloud(points=slope), ORIGIN, GrowthParams(max_slope_deg=10.0))
    assert candidate.surface.is_empty
    assert candidate.plane_model is None


def test_grow_patch_with_too_few_points():
    sparse = PointCloud(points=make_grid(1.0, 1.0))  # 9 points
    candidate = grow_patch(sparse, ORIGIN, GrowthParams(min_points=20, max_radius=2.0))
    assert candidate.surface.is_empty


def test_grow_patch_on_empty_cloud():
    candidate = grow_patch(PointCloud.empty(), ORIGIN, GrowthParams())
    assert candidate.surface.is_empty
    np.testing.assert_allclose(candidate.seed, ORIGIN)


def test_score_flat_patch():
    params = GrowthParams(initial_radius=1.0, radius_step=0.5, max_radius=3.0)
    candidate = score_candidate(grow_patch(FLAT, ORIGIN, params), expected_density=10.0)

    assert candidate.scored
    assert candidate.patch_radius == pytest.approx(3.0)
    assert candidate.data_confidence == pytest.approx(1.0)
    assert candidate.roughness == pytest.approx(0.0, abs=1e-9)
    assert candidate.relief == pytest.approx(0.0, abs=1e-9)
    # confidence 1, radius 3 of a 5 m target, no roughness or relief
    assert candidate.score == pytest.approx(0.6, rel=1e-6)


def test_scoring_is_deterministic():
    params = GrowthParams(max_radius=2.0)
    first = score_candidate(grow_patch(FLAT, ORIGIN, params))
    second = score_candidate(grow_patch(FLAT, ORIGIN, params))
    assert first.score == second.score
    assert first.roughness == second.roughness
    assert first.patch_radius == second.patch_radius


def test_empty_candidate_scores_zero():
    candidate = score_candidate(SLZDCandidate(seed=ORIGIN))
    assert candidate.scored
    assert candidate.score == 0.0
    assert candidate.plane_model is None


def test_scored_candidate_is_read_only():
    candidate = score_candidate(SLZDCandidate(seed=ORIGIN))
    with pytest.raises(FrozenInstanceError):
        candidate.score = 1.0
    with pytest.raises(InvalidParameter, match="already been scored"):
        score_candidate(candidate)


def test_score_fits_missing_plane():
    surface = PointCloud(points=make_grid(1.0, 0.25, z=2.0))
    candidate = score_candidate(SLZDCandidate(seed=[0.0, 0.0, 2.0], surface=surface))
    assert candidate.plane_model is not None
    np.testing.assert_allclose(candidate.plane_model.normal, [0, 0, 1], atol=1e-9)


def test_custom_policy_receives_metrics():
    seen = []

    def policy(data_confidence, roughness, relief, patch_radius):
        seen.append((data_confidence, roughness, relief, patch_radius))
        return 42.0

    candidate = score_candidate(grow_patch(FLAT, ORIGIN, GrowthParams(max_radius=2.0)), policy=policy)
    assert candidate.score == 42.0
    assert seen == [(candidate.data_confidence, candidate.roughness, candidate.relief, candidate.patch_radius)]


def test_compute_metrics_on_alternating_heights():
    points = make_grid(1.0, 0.5)
    points[:, 2] = np.where(np.arange(len(points)) % 2 == 0, 0.1, -0.1)
    plane = PlaneModel.from_coefficients([0, 0, 1, 0])
    confidence, roughness, relief, radius = compute_metrics(
        PointCloud(points=points), plane, ORIGIN, expected_density=1.0
    )
    assert relief == pytest.approx(0.2)
    assert 0.09 < roughness <= 0.1
    assert radius == pytest.approx(math.sqrt(2))
    assert confidence == pytest.approx(min(1.0, len(points) / (math.pi * 2.0)))


def test_compute_metrics_rejects_bad_density():
    with pytest.raises(InvalidParameter):
        compute_metrics(PointCloud.empty(), None, ORIGIN, expected_density=0.0)


def test_weighted_policy_is_monotone():
    policy = WeightedScorePolicy()
    base = policy(0.8, 0.01, 0.05, 3.0)
    assert policy(0.9, 0.01, 0.05, 3.0) > base
    assert policy(0.8, 0.02, 0.05, 3.0) < base
    assert policy(0.8, 0.01, 0.10, 3.0) < base
    assert policy(0.8, 0.01, 0.05, 4.0) > base
    assert 0.0 <= base <= 1.0


def test_weighted_policy_rejects_non_positive_scales():
    with pytest.raises(InvalidParameter):
        WeightedScorePolicy(roughness_scale=0.0)


def test_select_seeds_one_per_cell():
    seeds = select_seeds(FLAT, spacing=4.0)
    # 12 m wide grid anchored at its min corner: cells 0..3 per axis, last holds only the edge row
    assert seeds.shape == (16, 3)


def test_best_per_seed_keeps_highest_score():
    low = SLZDCandidate(seed=[1.0, 1.0, 0.0], score=0.2)
    high = SLZDCandidate(seed=[1.0, 1.0, 0.5], score=0.7)
    other = SLZDCandidate(seed=[5.0, 5.0, 0.0], score=0.1)
    kept = best_per_seed([low, high, other])
    assert len(kept) == 2
    assert high in kept and other in kept and low not in kept


def test_rank_candidates_orders_by_score():
    candidates = [SLZDCandidate(seed=[i, 0, 0], score=s) for i, s in enumerate([0.3, 0.9, 0.1])]
    ranked = rank_candidates(candidates)
    assert [c.score for c in ranked] == [0.9, 0.3, 0.1]


def test_find_candidates_scores_every_seed():
    seeds = np.array([[0.0, 0.0, 0.0], [3.0, 3.0, 0.0]])
    candidates = find_candidates(FLAT, seeds, GrowthParams(max_radius=2.0))
    assert len(candidates) == 2
    assert all(c.scored for c in candidates)
    assert all(c.score > 0 for c in candidates)
