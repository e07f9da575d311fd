import random

import pytest

from spinwheel.errors import PlanningError
from spinwheel.planner import SpinPlanner, SpinTrajectory, norm360, sector_at, sector_center


def test_sector_geometry_for_eight_items():
    assert sector_center(3, 8) == 157.5
    assert sector_at(112.5, 8) == 3


def test_target_for_eight_items_lands_on_winner():
    planner = SpinPlanner(pointer_offset=-90)
    trajectory = planner.plan(0.0, 3, 8, flourish=3)
    assert norm360(trajectory.target_angle) == pytest.approx(112.5)
    assert sector_at(trajectory.target_angle, 8) == 3


def test_round_trip_for_many_orientations():
    planner = SpinPlanner(min_turns=3)
    source = random.Random(42)
    for _ in range(2000):
        count = source.randint(1, 40)
        winner = source.randrange(count)
        current = source.uniform(-1e5, 1e5)
        trajectory = planner.plan(current, winner, count, source.randint(3, 5))
        assert sector_at(trajectory.target_angle, count) == winner


def test_rotation_always_forward_and_at_least_minimum_turns():
    planner = SpinPlanner(min_turns=3)
    for current in (0.0, 112.4, 112.5, 359.9, -720.0, 12345.6):
        trajectory = planner.plan(current, 3, 8, flourish=0)
        assert trajectory.total_rotation >= 3 * 360
        assert trajectory.target_angle > current


def test_short_spin_replanned_with_extra_turn():
    planner = SpinPlanner(min_turns=1)
    # already pointing at the winner: zero delta plus zero flourish
    trajectory = planner.plan(112.5, 3, 8, flourish=0)
    assert trajectory.total_rotation == pytest.approx(360.0)


def test_orientation_accumulates_without_wrapping():
    planner = SpinPlanner()
    first = planner.plan(0.0, 0, 4, flourish=3)
    second = planner.plan(first.target_angle, 2, 4, flourish=3)
    assert second.start_angle == first.target_angle
    assert second.target_angle > 360 * 6


def test_friction_decay_covers_planned_rotation_and_snaps():
    trajectory = SpinTrajectory(
        start_angle=0.0, target_angle=1530.0, total_rotation=1530.0,
        initial_velocity=1530.0 * (1 - 0.99), friction=0.99, velocity_floor=0.002,
        winning_index=0, item_count=4,
    )
    assert trajectory.initial_velocity == pytest.approx(15.3)

    velocity, travelled = trajectory.initial_velocity, 0.0
    while abs(velocity) >= 0.002:
        travelled += velocity
        velocity *= 0.99
    assert travelled == pytest.approx(1530.0, abs=0.25)

    frames = list(trajectory.frames())
    assert frames[-1] == (1530.0, 0.0)
    assert all(v > 0 for _, v in frames[:-1])
    assert len(frames) == trajectory.estimated_frames


def test_frames_move_forward_and_never_overshoot():
    trajectory = SpinPlanner().plan(10.0, 5, 12, flourish=4)
    angles = [angle for angle, _ in trajectory.frames()]
    assert angles == sorted(angles)
    assert max(angles) == trajectory.target_angle
    assert angles[-1] == trajectory.target_angle


@pytest.mark.parametrize('index,count', [(-1, 4), (4, 4), (0, 0)])
def test_invalid_plan_arguments(index, count):
    with pytest.raises(PlanningError):
        SpinPlanner().plan(0.0, index, count, flourish=3)


def test_invalid_friction():
    with pytest.raises(PlanningError):
        SpinPlanner(friction=1.0)


def test_single_item_wheel():
    trajectory = SpinPlanner().plan(33.0, 0, 1, flourish=3)
    assert sector_at(trajectory.target_angle, 1) == 0
