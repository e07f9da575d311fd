import random
from concurrent.futures import Future

import pytest
from PIL import Image

from spinwheel.clock import ManualClock
from spinwheel.models import WheelItem


class FixedRandom:
    """Random source that always returns the same draw"""

    def __init__(self, value, turns=3):
        self.value = value
        self.turns = turns

    def random(self):
        return self.value

    def randint(self, low, high):
        return max(low, min(self.turns, high))


class FakeAssetLoader:
    """Hands out futures the test resolves by hand"""

    def __init__(self):
        self.futures = {}
        self.requests = []

    def load(self, reference):
        self.requests.append(reference)
        future = Future()
        self.futures[reference] = future
        return future

    def resolve(self, reference, image=None):
        self.futures[reference].set_result(image or Image.new('RGBA', (64, 64), (0, 0, 255, 255)))

    def fail(self, reference, error):
        self.futures[reference].set_exception(error)

    def close(self):
        pass


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def loader():
    return FakeAssetLoader()


@pytest.fixture
def items():
    return [
        WheelItem(id='a', weight=10, label='Apple'),
        WheelItem(id='b', weight=20, label='Banana'),
        WheelItem(id='c', weight=30, label='Cherry'),
        WheelItem(id='d', weight=40, label='Date'),
    ]
