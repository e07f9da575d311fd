import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Tuple

from .errors import ItemValidationError


@dataclass(frozen=True)
class WheelItem:
    """One selectable entry on the wheel.

    ``weight`` only changes the odds of being drawn; every item gets the same
    sector size on screen. ``rotation`` turns the item's image inside its
    sector and is kept in ``[0, 360)``.
    """

    id: str
    weight: float
    label: str = ''
    image: Optional[str] = None
    rotation: int = 0
    active: bool = True

    def __post_init__(self):
        if isinstance(self.weight, bool) or not isinstance(self.weight, (int, float)):
            raise ItemValidationError(f"Weight of item '{self.id}' must be a number")
        if not math.isfinite(self.weight):
            raise ItemValidationError(f"Weight of item '{self.id}' must be a finite number")
        if self.weight < 0:
            raise ItemValidationError(f"Weight of item '{self.id}' must not be negative")
        object.__setattr__(self, 'rotation', int(self.rotation or 0) % 360)

    @classmethod
    def from_record(cls, record):
        """Build an item from a stored item record (see ``ItemStore``)"""
        return cls(
            id=str(record['id']),
            weight=float(record.get('weight', 0)),
            label=record.get('name', ''),
            image=record.get('image') or None,
            rotation=record.get('rotation') or 0,
            active=bool(record.get('active', True)),
        )

    @property
    def initial(self):
        """Short text shown on the placeholder disc: first emoji, else first character"""
        for char in self.label:
            code = ord(char)
            if 0x2600 <= code <= 0x27FF or code >= 0x1F000:
                return char
        stripped = self.label.strip()
        return stripped[0].upper() if stripped else '?'


@dataclass(frozen=True)
class SpinOutcome:
    """Who won a completed spin. Handed to the outcome sink, never retained."""

    item_id: str
    timestamp: datetime
    item: Optional[WheelItem] = None
    spin_number: int = 0

    def to_dict(self):
        data = {
            'item_id': self.item_id,
            'timestamp': self.timestamp.isoformat(),
            'spin_number': self.spin_number,
        }
        if self.item is not None:
            data['item_name'] = self.item.label
        return data


@dataclass(frozen=True)
class SpinFrame:
    """Orientation after one animation tick.

    ``highlighted_index`` is the sector under the pointer right now. It is for
    display only; the winner was fixed when the spin started.
    """

    angle: float
    velocity: float
    highlighted_index: int
    highlighted_item: Optional[WheelItem] = None

    @property
    def settled(self):
        return self.velocity == 0.0


class Idle:
    """The wheel is at rest and accepts spin requests"""

    spinning = False

    def __repr__(self):
        return 'Idle()'


IDLE = Idle()


@dataclass
class Spinning:
    """A spin in flight. The winner and trajectory are fixed for its whole life."""

    winner: WheelItem
    winner_index: int
    target_angle: float
    started_at: datetime
    items: Tuple[WheelItem, ...]
    trajectory: Any
    spin_number: int = 0
    frames_applied: int = field(default=0, compare=False)

    spinning = True

    @property
    def winner_id(self):
        return self.winner.id
