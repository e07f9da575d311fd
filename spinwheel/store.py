"""JSON-file persistence for wheel items and spin history."""
import json
import logging
import math
import os
import shutil
import threading
import uuid
from datetime import datetime

from .errors import ItemValidationError
from .models import WheelItem

logger = logging.getLogger(__name__)

file_lock = threading.RLock()

ITEMS_FILE = 'items.json'
SPINS_FILE = 'spins.json'
ITEM_FIELDS = ('name', 'image', 'weight', 'active', 'rotation')


def create_backup(filename):
    """Create a timestamped backup of a JSON file"""
    if os.path.exists(filename):
        backup_path = f"{filename}.{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.bak"
        try:
            shutil.copy2(filename, backup_path)
            logger.info(f"💾 Backup created: {backup_path}")
            return backup_path
        except OSError as e:
            logger.error(f"💥 Backup creation failed: {e}")
    return None


def load_json_file(filename, default_data):
    """Load JSON file, resetting it to ``default_data`` if it is missing or corrupted"""
    with file_lock:
        if not os.path.exists(filename):
            save_json_file(filename, default_data)
            return default_data
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, type(default_data)):
                raise json.JSONDecodeError(f"Expected {type(default_data).__name__}", filename, 0)
            return data
        except json.JSONDecodeError:
            logger.error(f"🚨 CORRUPTION: '{filename}' corrupted. Auto-recovering...")
            backup_path = create_backup(filename)
            if backup_path:
                logger.info(f"🔒 Corrupted file backed up as: {backup_path}")
            save_json_file(filename, default_data)
            logger.info("✅ Recovery complete. File reset to defaults.")
            return default_data
        except OSError as e:
            logger.error(f"💥 IO ERROR reading '{filename}': {e}")
            return default_data


def save_json_file(filename, data, backup=False):
    """Save JSON file atomically; returns False if it could not be written"""
    with file_lock:
        temp_filename = f"{filename}.tmp"
        try:
            payload = json.dumps(data, indent=2, ensure_ascii=False)
            if backup and os.path.exists(filename):
                create_backup(filename)
            directory = os.path.dirname(filename)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(temp_filename, 'w', encoding='utf-8') as f:
                f.write(payload)
            os.replace(temp_filename, filename)
            logger.debug(f"💾 File saved successfully: {filename}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"💥 Save error for '{filename}': {e}")
            if os.path.exists(temp_filename):
                try:
                    os.remove(temp_filename)
                except OSError:
                    pass
            return False


def validate_item_data(data):
    """Validate an item record; returns ``(is_valid, error_message)``"""
    for field in ('name', 'weight'):
        if field not in data:
            return False, f"Missing required field: {field}"

    weight = data['weight']
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        return False, "Weight must be a non-negative number"
    if not math.isfinite(weight) or weight < 0:
        return False, "Weight must be a non-negative number"

    if not isinstance(data['name'], str) or not data['name'].strip():
        return False, "Name must be a non-empty string"

    rotation = data.get('rotation', 0)
    if rotation is not None and (isinstance(rotation, bool) or not isinstance(rotation, (int, float))):
        return False, "Rotation must be a number of degrees"

    image = data.get('image')
    if image is not None and not isinstance(image, str):
        return False, "Image must be a string reference"

    return True, None


def _coerce(data):
    """Normalise accepted input values (numeric strings, rotation range)"""
    cleaned = {key: data[key] for key in ITEM_FIELDS if key in data}
    if isinstance(cleaned.get('weight'), str):
        try:
            cleaned['weight'] = float(cleaned['weight'])
        except ValueError:
            pass
    if isinstance(cleaned.get('rotation'), str):
        try:
            cleaned['rotation'] = int(float(cleaned['rotation']))
        except ValueError:
            pass
    if isinstance(cleaned.get('name'), str):
        cleaned['name'] = cleaned['name'].strip()
    if cleaned.get('image') == '':
        cleaned['image'] = None
    return cleaned


class ItemStore:
    """Items and spin history kept as JSON files in ``data_dir``"""

    def __init__(self, data_dir, history_limit=100):
        self.data_dir = data_dir
        self.history_limit = history_limit
        os.makedirs(data_dir, exist_ok=True)
        self.items_path = os.path.join(data_dir, ITEMS_FILE)
        self.spins_path = os.path.join(data_dir, SPINS_FILE)

    # -- items ------------------------------------------------------------

    def _load_items(self):
        return load_json_file(self.items_path, [])

    def _save_items(self, items):
        if not save_json_file(self.items_path, items, backup=True):
            raise OSError(f"Failed to save {self.items_path}")

    def list_items(self):
        """All items, newest first"""
        return list(reversed(self._load_items()))

    def active_items(self):
        return [item for item in self.list_items() if item.get('active', True)]

    def wheel_items(self):
        """Active items as ``WheelItem``s, in wheel order"""
        return [WheelItem.from_record(record) for record in self.active_items()]

    def get_item(self, item_id):
        return next((item for item in self._load_items() if item.get('id') == item_id), None)

    def create_item(self, data):
        data = _coerce(data)
        is_valid, error_msg = validate_item_data(data)
        if not is_valid:
            raise ItemValidationError(error_msg)

        with file_lock:
            items = self._load_items()
            new_id = uuid.uuid4().hex
            while any(item.get('id') == new_id for item in items):
                new_id = uuid.uuid4().hex

            now = datetime.now().isoformat()
            item = {
                'id': new_id,
                'name': data['name'],
                'image': data.get('image'),
                'weight': float(data['weight']),
                'active': bool(data.get('active', True)),
                'rotation': int(data.get('rotation') or 0) % 360,
                'created_at': now,
                'updated_at': now,
            }
            items.append(item)
            self._save_items(items)

        logger.info(f"🎁 Item added: {item['name']} (weight {item['weight']})")
        return item

    def update_item(self, item_id, data):
        """Partially update an item; returns ``None`` when it does not exist"""
        changes = _coerce(data)
        with file_lock:
            items = self._load_items()
            index = next((i for i, item in enumerate(items) if item.get('id') == item_id), None)
            if index is None:
                return None

            merged = {**items[index], **changes}
            is_valid, error_msg = validate_item_data(merged)
            if not is_valid:
                raise ItemValidationError(error_msg)

            merged['weight'] = float(merged['weight'])
            merged['active'] = bool(merged.get('active', True))
            merged['rotation'] = int(merged.get('rotation') or 0) % 360
            merged['updated_at'] = datetime.now().isoformat()
            items[index] = merged
            self._save_items(items)

        logger.info(f"🎁 Item updated: {merged['name']}")
        return merged

    def delete_item(self, item_id):
        with file_lock:
            items = self._load_items()
            index = next((i for i, item in enumerate(items) if item.get('id') == item_id), None)
            if index is None:
                return False
            deleted = items.pop(index)
            self._save_items(items)

        logger.info(f"🗑️ Item deleted: {deleted['name']}")
        return True

    # -- spins ------------------------------------------------------------

    def record_spin(self, outcome, source='unknown', ip_address=None):
        with file_lock:
            history = load_json_file(self.spins_path, [])
            record = {
                'id': uuid.uuid4().hex,
                'item_id': outcome.item_id,
                'item_name': outcome.item.label if outcome.item is not None else None,
                'timestamp': outcome.timestamp.isoformat(),
                'spin_number': outcome.spin_number,
                'source': source,
                'ip_address': ip_address,
            }
            history.insert(0, record)
            save_json_file(self.spins_path, history[:self.history_limit])
        return record

    def list_spins(self):
        """Spin history, newest first, each joined with its item if it still exists"""
        items = {item['id']: item for item in self._load_items()}
        spins = []
        for record in load_json_file(self.spins_path, []):
            spin = dict(record)
            if spin.get('item_id') in items:
                spin['item'] = items[spin['item_id']]
            spins.append(spin)
        return spins

    def clear_spins(self):
        with file_lock:
            history = load_json_file(self.spins_path, [])
            if history:
                backup_path = create_backup(self.spins_path)
                logger.info(f"🔒 History backed up to: {backup_path}")
            return save_json_file(self.spins_path, [])
