"""Error taxonomy for the wheel engine and its collaborators."""


class WheelError(Exception):
    """Base class for every error raised by the wheel engine"""


class EmptySelectionError(WheelError):
    """No items were supplied to draw from"""

    def __init__(self, message='Cannot spin: no items on the wheel'):
        super().__init__(message)


class NoWeightError(WheelError):
    """The items' weights do not add up to a positive total"""

    def __init__(self, total=0.0):
        self.total = total
        super().__init__(f'Cannot spin: total weight must be positive (got {total})')


class AlreadySpinningError(WheelError):
    """A spin was requested while another one is in flight"""

    def __init__(self, message='Wheel is currently spinning. Please wait for it to complete.'):
        super().__init__(message)


class PlanningError(WheelError, ValueError):
    """Invalid arguments handed to the spin planner"""


class ItemValidationError(WheelError, ValueError):
    """An item record failed validation"""


class AssetLoadError(WheelError):
    """An image asset could not be fetched or decoded.

    Never fatal: the renderer falls back to a placeholder for the reference.
    """

    def __init__(self, reference, reason=''):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Failed to load image '{reference}': {reason}" if reason
                         else f"Failed to load image '{reference}'")
