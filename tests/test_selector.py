import random
from types import SimpleNamespace

import pytest

from spinwheel.errors import EmptySelectionError, ItemValidationError, NoWeightError
from spinwheel.models import WheelItem
from spinwheel.selector import probabilities, select, simulate

from .conftest import FixedRandom


def make_items(*weights):
    return [WheelItem(id=str(i), weight=w, label=f'Item {i}') for i, w in enumerate(weights)]


def test_draw_lands_on_first_cumulative_weight_reaching_it():
    # cumulative weights 10, 30, 60, 100; a draw of 55 falls in the third item
    assert select(make_items(10, 20, 30, 40), FixedRandom(0.55)) == 2


def test_boundary_draw_belongs_to_earlier_item():
    assert select(make_items(1, 1, 1, 1), FixedRandom(0.25)) == 0
    assert select(make_items(1, 1, 1, 1), FixedRandom(0.5)) == 1


def test_zero_draw_skips_leading_zero_weight_items():
    assert select(make_items(0, 0, 5), FixedRandom(0.0)) == 2


def test_zero_weight_item_is_never_drawn():
    items = make_items(0, 3, 0, 1)
    counts = simulate(items, 5000, random.Random(7))
    assert counts['0'] == 0
    assert counts['2'] == 0


def test_top_of_range_resolves_to_last_weighted_item():
    assert select(make_items(1, 2, 0), FixedRandom(0.9999999999999999)) == 1


def test_empty_items_rejected():
    with pytest.raises(EmptySelectionError):
        select([])


def test_all_zero_weights_rejected():
    with pytest.raises(NoWeightError):
        select(make_items(0, 0))


def test_injected_source_makes_draws_reproducible():
    items = make_items(1, 2, 3, 4, 5)
    first = [select(items, random.Random(99)) for _ in range(5)]
    second = [select(items, random.Random(99)) for _ in range(5)]
    assert first == second


def test_observed_frequencies_converge_to_weights():
    items = make_items(10, 20, 30, 40)
    draws = 100000
    counts = simulate(items, draws, random.Random(2024))
    for item, expected in zip(items, probabilities(items)):
        assert abs(counts[item.id] / draws - expected) < 0.02


def test_probabilities_follow_weights():
    assert probabilities(make_items(1, 3)) == [0.25, 0.75]
    assert probabilities(make_items(0, 0)) == [0.0, 0.0]


@pytest.mark.parametrize('weight', [float('nan'), float('inf')])
def test_non_finite_weight_rejected_by_item(weight):
    with pytest.raises(ItemValidationError):
        WheelItem(id='x', weight=weight)


@pytest.mark.parametrize('weight', [float('nan'), float('inf')])
def test_non_finite_total_weight_is_not_drawable(weight):
    items = [SimpleNamespace(id='a', weight=1), SimpleNamespace(id='b', weight=weight)]
    with pytest.raises(NoWeightError):
        select(items, FixedRandom(0.5))
