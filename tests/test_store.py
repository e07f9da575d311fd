import json
import os
from datetime import datetime

import pytest

from spinwheel.errors import ItemValidationError
from spinwheel.models import SpinOutcome, WheelItem
from spinwheel.store import ItemStore, load_json_file, save_json_file, validate_item_data


@pytest.fixture
def store(tmp_path):
    return ItemStore(str(tmp_path), history_limit=3)


def test_create_and_list_newest_first(store):
    first = store.create_item({'name': 'Vanilla', 'weight': 10})
    second = store.create_item({'name': 'Chocolate', 'weight': 5, 'image': '/images/choc.png'})

    listed = store.list_items()
    assert [item['id'] for item in listed] == [second['id'], first['id']]
    assert first['weight'] == 10.0
    assert first['active'] is True
    assert first['rotation'] == 0
    assert first['image'] is None


def test_numeric_strings_are_coerced(store):
    item = store.create_item({'name': '  Mint  ', 'weight': '2.5', 'rotation': '450'})
    assert item['name'] == 'Mint'
    assert item['weight'] == 2.5
    assert item['rotation'] == 90


@pytest.mark.parametrize('data', [
    {'weight': 1},
    {'name': 'No weight'},
    {'name': '', 'weight': 1},
    {'name': 'Negative', 'weight': -1},
    {'name': 'Text', 'weight': 'lots'},
    {'name': 'Flag', 'weight': True},
    {'name': 'Nan', 'weight': float('nan')},
    {'name': 'Infinite', 'weight': float('inf')},
    {'name': 'Nan text', 'weight': 'nan'},
    {'name': 'Image', 'weight': 1, 'image': 42},
])
def test_invalid_items_rejected(store, data):
    with pytest.raises(ItemValidationError):
        store.create_item(data)
    assert store.list_items() == []


def test_update_merges_fields(store):
    item = store.create_item({'name': 'Banana', 'weight': 3})
    updated = store.update_item(item['id'], {'weight': 7, 'active': False, 'id': 'hijack'})

    assert updated['id'] == item['id']
    assert updated['weight'] == 7.0
    assert updated['active'] is False
    assert updated['name'] == 'Banana'
    assert store.get_item(item['id'])['weight'] == 7.0


def test_update_validates_merged_record(store):
    item = store.create_item({'name': 'Banana', 'weight': 3})
    with pytest.raises(ItemValidationError):
        store.update_item(item['id'], {'weight': -2})
    assert store.get_item(item['id'])['weight'] == 3.0


def test_update_and_delete_missing_item(store):
    assert store.update_item('nope', {'weight': 1}) is None
    assert store.delete_item('nope') is False


def test_delete_item(store):
    item = store.create_item({'name': 'Berry', 'weight': 1})
    assert store.delete_item(item['id']) is True
    assert store.get_item(item['id']) is None


def test_wheel_items_only_active(store):
    store.create_item({'name': 'Shown', 'weight': 1})
    store.create_item({'name': 'Hidden', 'weight': 1, 'active': False})

    wheel = store.wheel_items()
    assert len(wheel) == 1
    assert isinstance(wheel[0], WheelItem)
    assert wheel[0].label == 'Shown'


def test_spin_history_is_capped_and_joined(store):
    item = store.create_item({'name': 'Cherry', 'weight': 1})
    wheel_item = WheelItem.from_record(item)
    for number in range(1, 6):
        outcome = SpinOutcome(item['id'], datetime.now(), wheel_item, number)
        store.record_spin(outcome, source='test', ip_address='127.0.0.1')

    spins = store.list_spins()
    assert [spin['spin_number'] for spin in spins] == [5, 4, 3]
    assert spins[0]['item']['name'] == 'Cherry'
    assert spins[0]['source'] == 'test'
    assert spins[0]['item_name'] == 'Cherry'


def test_spin_history_survives_item_deletion(store):
    item = store.create_item({'name': 'Gone', 'weight': 1})
    store.record_spin(SpinOutcome(item['id'], datetime.now(), WheelItem.from_record(item), 1))
    store.delete_item(item['id'])

    spin = store.list_spins()[0]
    assert 'item' not in spin
    assert spin['item_name'] == 'Gone'


def test_clear_spins_keeps_backup(store, tmp_path):
    item = store.create_item({'name': 'Cherry', 'weight': 1})
    store.record_spin(SpinOutcome(item['id'], datetime.now(), None, 1))

    assert store.clear_spins() is True
    assert store.list_spins() == []
    assert any(name.startswith('spins.json.') and name.endswith('.bak')
               for name in os.listdir(tmp_path))


def test_corrupted_file_is_reset_and_backed_up(tmp_path):
    path = tmp_path / 'items.json'
    path.write_text('{not json', encoding='utf-8')

    assert load_json_file(str(path), []) == []
    assert json.loads(path.read_text(encoding='utf-8')) == []
    assert any(name.endswith('.bak') for name in os.listdir(tmp_path))


def test_wrong_top_level_type_is_treated_as_corruption(tmp_path):
    path = tmp_path / 'items.json'
    path.write_text('{"a": 1}', encoding='utf-8')
    assert load_json_file(str(path), []) == []


def test_missing_file_created_with_defaults(tmp_path):
    path = tmp_path / 'nested' / 'spins.json'
    assert load_json_file(str(path), []) == []
    assert path.exists()


def test_save_refuses_unserialisable_data(tmp_path):
    path = tmp_path / 'bad.json'
    assert save_json_file(str(path), {'when': object()}) is False
    assert not path.exists()
    assert not (tmp_path / 'bad.json.tmp').exists()


def test_validate_item_data_messages():
    assert validate_item_data({'name': 'Ok', 'weight': 0}) == (True, None)
    ok, message = validate_item_data({'name': 'Ok'})
    assert not ok
    assert 'weight' in message


def test_update_rejects_non_finite_weight(store):
    item = store.create_item({'name': 'Banana', 'weight': 3})
    with pytest.raises(ItemValidationError):
        store.update_item(item['id'], {'weight': float('inf')})
    assert store.get_item(item['id'])['weight'] == 3.0
