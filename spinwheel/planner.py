"""Angle math that turns a drawn winner into a friction-decay spin.

Angles are degrees, clockwise, with 0 at three o'clock (the same convention
Pillow uses for ``pieslice``). Sector ``i`` covers ``[i*arc, (i+1)*arc)`` on
the unrotated wheel. The wheel orientation is cumulative and never wrapped;
wrapping only happens when mapping an angle back to a sector.

Each tick the wheel moves by ``v`` and ``v`` shrinks to ``v * friction``. The
displacement of the endless decay is ``v0 / (1 - friction)``, so starting at
``v0 = total_rotation * (1 - friction)`` covers the planned rotation. Once
``v`` drops under the velocity floor the wheel snaps onto the exact target.
"""
import math
from dataclasses import dataclass

from .errors import PlanningError

DEFAULT_POINTER_OFFSET = -90.0
DEFAULT_FRICTION = 0.99
DEFAULT_VELOCITY_FLOOR = 0.002


def norm360(degrees):
    residue = degrees % 360.0
    # -1e-17 % 360 rounds up to 360.0
    return 0.0 if residue >= 360.0 else residue


def sector_arc(item_count):
    return 360.0 / item_count


def sector_center(index, item_count):
    arc = sector_arc(item_count)
    return index * arc + arc / 2


def sector_at(angle, item_count, pointer_offset=DEFAULT_POINTER_OFFSET):
    """Index of the sector under the pointer when the wheel sits at ``angle``"""
    if item_count < 1:
        raise PlanningError('item_count must be at least 1')
    index = int(norm360(pointer_offset - angle) // sector_arc(item_count))
    return min(index, item_count - 1)


@dataclass(frozen=True)
class SpinTrajectory:
    start_angle: float
    target_angle: float
    total_rotation: float
    initial_velocity: float
    friction: float
    velocity_floor: float
    winning_index: int
    item_count: int

    @property
    def turns(self):
        return self.total_rotation / 360.0

    @property
    def estimated_frames(self):
        """Ticks until the velocity floor is crossed, the snap frame included"""
        if self.initial_velocity <= self.velocity_floor:
            return 1
        ratio = self.velocity_floor / self.initial_velocity
        return int(math.floor(math.log(ratio) / math.log(self.friction))) + 1

    def frames(self):
        """Yield ``(angle, velocity)`` per tick.

        Velocity is ``0.0`` on the last frame only, and that frame's angle is
        exactly ``target_angle``.
        """
        angle = self.start_angle
        velocity = self.initial_velocity
        while True:
            angle += velocity
            velocity *= self.friction
            if abs(velocity) < self.velocity_floor:
                yield self.target_angle, 0.0
                return
            yield angle, velocity


class SpinPlanner:
    """Computes where a spin must stop and how fast it must start.

    ``min_turns`` is the least number of full revolutions any spin shows,
    no matter how close the wheel already is to the target.
    """

    def __init__(self, friction=DEFAULT_FRICTION, velocity_floor=DEFAULT_VELOCITY_FLOOR,
                 pointer_offset=DEFAULT_POINTER_OFFSET, min_turns=1):
        if not 0 < friction < 1:
            raise PlanningError('friction must be between 0 and 1 (exclusive)')
        if velocity_floor <= 0:
            raise PlanningError('velocity_floor must be positive')
        self.friction = friction
        self.velocity_floor = velocity_floor
        self.pointer_offset = pointer_offset
        self.min_turns = max(int(min_turns), 1)

    def target_residue(self, winning_index, item_count):
        return norm360(self.pointer_offset - sector_center(winning_index, item_count))

    def plan(self, current_angle, winning_index, item_count, flourish):
        if item_count < 1:
            raise PlanningError('item_count must be at least 1')
        if not 0 <= winning_index < item_count:
            raise PlanningError(f'winning_index {winning_index} outside [0, {item_count})')

        delta = norm360(self.target_residue(winning_index, item_count) - norm360(current_angle))
        if 360.0 - delta < 1e-9:
            # already on target; float noise must not add a stray turn
            delta = 0.0
        total_rotation = delta + max(int(flourish), 0) * 360.0
        while total_rotation < self.min_turns * 360.0:
            total_rotation += 360.0

        return SpinTrajectory(
            start_angle=current_angle,
            target_angle=current_angle + total_rotation,
            total_rotation=total_rotation,
            initial_velocity=total_rotation * (1 - self.friction),
            friction=self.friction,
            velocity_floor=self.velocity_floor,
            winning_index=winning_index,
            item_count=item_count,
        )
