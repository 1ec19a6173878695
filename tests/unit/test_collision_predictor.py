"""Unit tests for collision prediction and the control barrier."""

import math

import numpy as np
import pytest

from swarm_slam.core import CollisionConfig
from swarm_slam.coordination import (
    AgentKinematics,
    CollisionPredictor,
    compute_closing_scale,
    compute_distance_scale,
    compute_speed_scale,
    time_to_closest_approach,
)


def agent(agent_id, position, velocity=(0.0, 0.0, 0.0), radius=0.5):
    return AgentKinematics(
        agent_id=agent_id,
        position=np.array(position, dtype=float),
        velocity=None if velocity is None else np.array(velocity, dtype=float),
        safety_radius=radius,
    )


class TestScaleFunctions:
    """Test speed scale helpers."""

    def test_distance_scale_limits(self):
        """Test 0 inside hard stop and 1 beyond slow down."""
        config = CollisionConfig(hard_stop_distance=1.5, slow_down_distance=2.5)

        assert compute_distance_scale(1.0, config) == 0.0
        assert compute_distance_scale(1.5, config) == 0.0
        assert compute_distance_scale(2.5, config) == 1.0
        assert compute_distance_scale(10.0, config) == 1.0

    def test_distance_scale_quartic(self):
        """Test quartic ease between the limits."""
        config = CollisionConfig(hard_stop_distance=1.5, slow_down_distance=2.5)
        assert compute_distance_scale(2.0, config) == pytest.approx(0.5 ** 4)

    def test_closing_scale(self):
        """Test linear de-rate from 1 to the floor."""
        config = CollisionConfig(
            min_relative_speed=0.05, aggressive_closing_speed=1.5, min_closing_scale=0.2
        )

        assert compute_closing_scale(0.0, config) == 1.0
        assert compute_closing_scale(0.05, config) == 1.0
        assert compute_closing_scale(0.75, config) == pytest.approx(0.6)
        assert compute_closing_scale(1.5, config) == pytest.approx(0.2)
        assert compute_closing_scale(5.0, config) == pytest.approx(0.2)

    def test_speed_scale_bounded(self, rng):
        """Test combined scale stays within [0, 1]."""
        config = CollisionConfig()
        for _ in range(200):
            distance = rng.uniform(-1.0, 5.0)
            closing = rng.uniform(-2.0, 5.0)
            scale = compute_speed_scale(distance, closing, config)
            assert 0.0 <= scale <= 1.0

    def test_time_to_closest_approach(self):
        """Test t* for head-on approach."""
        t = time_to_closest_approach(np.array([2.0, 0.0, 0.0]), np.array([-1.0, 0.0, 0.0]), 0.05)
        assert t == pytest.approx(2.0)

    def test_time_to_closest_approach_slow(self):
        """Test no answer below the minimum relative speed."""
        assert time_to_closest_approach(np.array([2.0, 0.0, 0.0]), np.array([0.01, 0.0, 0.0]), 0.05) is None


class TestPrediction:
    """Test predictive collision checks."""

    def test_predictive_braking(self):
        """Test head-on approach within the horizon stops the approaching agent."""
        predictor = CollisionPredictor(CollisionConfig())
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), agent(1, [2.0, 0.0, 0.0])], now=0.0
        )

        assert state.active
        assert state.speed_scale_for(0) == pytest.approx(0.0)
        # Stationary agent is not moving toward the other
        assert state.speed_scale_for(1) == 1.0
        assert state.time_to_closest_approach == pytest.approx(2.0)
        assert state.closing_speed == pytest.approx(1.0)
        assert len(state.predictions) == 1

    def test_three_meter_approach_outside_horizon(self):
        """Test 3m apart closing at 1 m/s reaches closest approach at 3s, past a 2s horizon."""
        predictor = CollisionPredictor(CollisionConfig(prediction_horizon=2.0))
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), agent(1, [3.0, 0.0, 0.0])], now=0.0
        )

        t = time_to_closest_approach(np.array([3.0, 0.0, 0.0]), np.array([-1.0, 0.0, 0.0]), 0.05)
        assert t == pytest.approx(3.0)
        assert state.predictions == []
        assert state.speed_scale_for(0) == 1.0

    def test_receding_ignored(self):
        """Test agents moving apart are not slowed."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [-1.0, 0.0, 0.0]), agent(1, [3.0, 0.0, 0.0], [1.0, 0.0, 0.0])],
            now=0.0,
        )

        assert not state.active
        assert state.predictions == []

    def test_parallel_motion_ignored(self):
        """Test no relative motion means no prediction."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), agent(1, [3.0, 0.0, 0.0], [1.0, 0.0, 0.0])],
            now=0.0,
        )

        assert not state.active

    def test_safe_miss_distance_ignored(self):
        """Test a predicted pass outside the safety radii is ignored."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), agent(1, [2.0, 1.5, 0.0])], now=0.0
        )

        assert not state.active

    def test_intermediate_scale(self):
        """Test scale combines distance and closing components."""
        config = CollisionConfig()
        predictor = CollisionPredictor(config)
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], radius=1.5),
                agent(1, [2.0, 2.0, 0.0], radius=1.5),
            ],
            now=0.0,
        )

        closing = 1.0 / math.sqrt(2.0)
        expected = compute_distance_scale(2.0, config) * compute_closing_scale(closing, config)

        assert state.closing_speed == pytest.approx(closing)
        assert state.speed_scale_for(0) == pytest.approx(expected)
        assert 0.0 < state.speed_scale_for(0) < 1.0

    def test_minimum_scale_wins(self):
        """Test an agent threatened twice gets the smaller scale."""
        config = CollisionConfig()
        predictor = CollisionPredictor(config)
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], radius=1.5),
                agent(1, [2.0, 2.0, 0.0], radius=1.5),
                agent(2, [2.0, -2.2, 0.0], radius=1.5),
            ],
            now=0.0,
        )

        scales = [p.scale for p in state.predictions]
        assert len(scales) == 2
        assert scales[0] != pytest.approx(scales[1])
        assert state.speed_scale_for(0) == pytest.approx(min(scales))

    def test_missing_velocity_skips_prediction(self):
        """Test agents without a velocity estimate only get proximity checks."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], None), agent(1, [0.5, 0.0, 0.0], [-1.0, 0.0, 0.0])],
            now=0.0,
        )

        assert not state.active
        assert len(state.proximity_warnings) == 1
        assert state.rejections == {}

    def test_disabled(self):
        """Test disabled avoidance reports nothing."""
        predictor = CollisionPredictor(CollisionConfig(enabled=False))
        state = predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), agent(1, [2.0, 0.0, 0.0])], now=0.0
        )

        assert not state.active
        assert state.speed_scale_for(0) == 1.0

    def test_unknown_agent_scale(self):
        """Test agents not in the state default to full speed."""
        state = CollisionPredictor().update([], now=0.0)
        assert state.speed_scale_for(42) == 1.0
        assert not state.rejection_for(42).active


class TestHysteresis:
    """Test collision reporting hold."""

    def test_active_held_after_detection(self):
        """Test active and reporting values hold for the hold time."""
        predictor = CollisionPredictor(CollisionConfig(collision_hold_seconds=0.25))
        predictor.update(
            [agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]), agent(1, [2.0, 0.0, 0.0])], now=0.0
        )

        far_apart = [agent(0, [0.0, 0.0, 0.0]), agent(1, [20.0, 0.0, 0.0])]

        held = predictor.update(far_apart, now=0.1)
        assert held.active
        assert held.closing_speed == pytest.approx(1.0)
        # Scales are always from the current tick
        assert held.speed_scale_for(0) == 1.0

        released = predictor.update(far_apart, now=0.3)
        assert not released.active


class TestBarrier:
    """Test control-barrier motion rejection."""

    def test_violation_rejects_motion_toward_neighbor(self):
        """Test both agents are blocked from moving toward each other."""
        predictor = CollisionPredictor(CollisionConfig())
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]),
                agent(1, [1.5, 0.0, 0.0], [-1.0, 0.0, 0.0]),
            ],
            now=0.0,
        )

        assert state.barrier_active
        assert state.barrier_h == pytest.approx(1.25)
        assert state.barrier_dhdt == pytest.approx(-6.0)

        rej0 = state.rejection_for(0)
        rej1 = state.rejection_for(1)
        assert rej0.active and rej1.active
        np.testing.assert_array_almost_equal(rej0.direction, [1.0, 0.0, 0.0])
        np.testing.assert_array_almost_equal(rej1.direction, [-1.0, 0.0, 0.0])

    def test_slow_approach_within_barrier(self):
        """Test approach slower than the allowed decay is not a violation."""
        predictor = CollisionPredictor(CollisionConfig(barrier_alpha=3.0))
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0], [0.5, 0.0, 0.0]),
                agent(1, [1.5, 0.0, 0.0], [-0.5, 0.0, 0.0]),
            ],
            now=0.0,
        )

        assert not state.barrier_active
        assert state.rejections == {}

    def test_receding_within_barrier(self):
        """Test separating agents are not constrained."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0], [-1.0, 0.0, 0.0]),
                agent(1, [1.5, 0.0, 0.0], [1.0, 0.0, 0.0]),
            ],
            now=0.0,
        )

        assert not state.barrier_active

    def test_most_severe_violation_wins(self):
        """Test agent in two violations is blocked toward the closer threat."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0]),
                agent(1, [1.5, 0.0, 0.0], [-2.0, 0.0, 0.0]),
                agent(2, [-1.2, 0.0, 0.0], [2.0, 0.0, 0.0]),
            ],
            now=0.0,
        )

        np.testing.assert_array_almost_equal(state.rejection_for(0).direction, [-1.0, 0.0, 0.0])
        np.testing.assert_array_almost_equal(state.rejection_for(1).direction, [-1.0, 0.0, 0.0])
        np.testing.assert_array_almost_equal(state.rejection_for(2).direction, [1.0, 0.0, 0.0])

    def test_reported_barrier_values_from_most_severe_pair(self):
        """Test h and dh/dt describe the smallest-h violation, not the last one checked."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [
                agent(0, [0.0, 0.0, 0.0]),
                agent(1, [-1.2, 0.0, 0.0], [2.0, 0.0, 0.0]),
                agent(2, [1.5, 0.0, 0.0], [-2.0, 0.0, 0.0]),
            ],
            now=0.0,
        )

        assert state.barrier_h == pytest.approx(0.44)
        assert state.barrier_dhdt == pytest.approx(-4.8)
        np.testing.assert_array_almost_equal(state.rejection_for(0).direction, [-1.0, 0.0, 0.0])

    def test_coincident_agents_use_fallback_direction(self):
        """Test coincident positions give a finite rejection direction."""
        predictor = CollisionPredictor()
        state = predictor.update(
            [
                agent(0, [1.0, 1.0, 1.0], [0.1, 0.0, 0.0]),
                agent(1, [1.0, 1.0, 1.0], [-0.1, 0.0, 0.0]),
            ],
            now=0.0,
        )

        direction = state.rejection_for(0).direction
        assert np.all(np.isfinite(direction))
        assert np.linalg.norm(direction) == pytest.approx(1.0)
        np.testing.assert_array_almost_equal(state.rejection_for(1).direction, -direction)
