"""Weighted prize-wheel selection and spin animation engine."""
from .clock import ManualClock, SocketIOClock
from .controller import SpinController
from .errors import (
    AlreadySpinningError,
    AssetLoadError,
    EmptySelectionError,
    ItemValidationError,
    NoWeightError,
    PlanningError,
    WheelError,
)
from .models import IDLE, Idle, SpinFrame, SpinOutcome, Spinning, WheelItem
from .planner import SpinPlanner, SpinTrajectory, sector_at, sector_center
from .renderer import WheelRenderer
from .selector import select

__version__ = '1.0.0'
