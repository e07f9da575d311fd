"""Flask + Socket.IO host around the spin engine.

The server owns the wheel: spins are requested over REST or Socket.IO, the
controller animates on the server's frame clock and clients follow the
``spin_tick`` stream. The winner is only published with ``spin_complete``.
"""
import csv
import io
import logging
import os
import random
import threading
import time
import uuid
from datetime import datetime

from flask import Blueprint, Flask, Response, current_app, jsonify, request, send_file
from flask_socketio import SocketIO
from PIL import Image, UnidentifiedImageError

from .assets import AssetLoader
from .clock import SocketIOClock
from .config import configure_logging, load_config, save_config
from .controller import SpinController
from .errors import AlreadySpinningError, EmptySelectionError, ItemValidationError, NoWeightError
from .planner import SpinPlanner
from .renderer import WheelRenderer
from .selector import probabilities, simulate
from .store import ItemStore, load_json_file

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
MAX_SIMULATIONS = 100000

DEFAULT_ITEMS = [
    {'name': '🍫 Chocolate Milkshake', 'weight': 12},
    {'name': '🍓 Strawberry Milkshake', 'weight': 10},
    {'name': '🤍 Vanilla Milkshake', 'weight': 8},
    {'name': '🍪 Cookies & Cream', 'weight': 10},
    {'name': '🌰 Pistachio Gelato', 'weight': 8},
    {'name': '🍋 Lemon Sorbet', 'weight': 12},
    {'name': '🎁 Free Topping', 'weight': 25},
    {'name': '🔄 Try Again', 'weight': 15},
]

socketio = SocketIO()
api = Blueprint('api', __name__)


class WheelService:
    """Glue between the controller, the item store and connected clients"""

    def __init__(self, store, settings, clock, asset_loader=None):
        self.store = store
        self.settings = settings
        self.tick_emit_every = settings['tick_emit_every']
        self.renderer = WheelRenderer(
            size=settings['wheel_size'],
            asset_loader=asset_loader,
            pointer_offset=settings['pointer_offset'],
        )
        planner = SpinPlanner(
            friction=settings['friction'],
            velocity_floor=settings['velocity_floor'],
            pointer_offset=settings['pointer_offset'],
            min_turns=settings['min_turns'],
        )
        self.controller = SpinController(
            store.wheel_items,
            clock,
            planner=planner,
            renderer=self.renderer,
            rng=random.Random(settings['seed']),
            on_settle=self._on_settle,
            on_tick=self._on_tick,
            min_turns=settings['min_turns'],
            max_turns=settings['max_turns'],
        )
        self.asset_loader = asset_loader
        self.frame_rate = settings['frame_rate']

        self.connected_clients = set()
        self.last_winner = None
        self.last_spin_source = None
        self._spin_context = {}
        self._lock = threading.RLock()
        self.performance_metrics = {
            'start_time': time.time(),
            'total_connections': 0,
            'peak_concurrent': 0,
        }

    # -- spins ------------------------------------------------------------

    def trigger_spin(self, source='unknown', user_data=None, ip_address=None):
        """Start a spin from any source. Errors propagate after being broadcast."""
        try:
            with self._lock:
                state = self.controller.request_spin(strict=True)
                self._spin_context[state.spin_number] = (source, ip_address)
                self.last_spin_source = source
        except AlreadySpinningError as e:
            logger.warning(f"🔄 Spin from '{source}' BLOCKED: wheel is busy")
            socketio.emit('spin_rejected', {
                'reason': 'wheel_busy',
                'message': str(e),
                'source': source,
                'current_state': self.get_status(),
                'timestamp': datetime.now().isoformat(),
            })
            raise
        except (EmptySelectionError, NoWeightError) as e:
            logger.error(f"⌘ Spin ABORTED from '{source}': {e}")
            socketio.emit('spin_error', {
                'message': str(e),
                'error_type': 'no_items' if isinstance(e, EmptySelectionError) else 'no_weight',
            })
            raise

        logger.info(f"🎲 Spin ACCEPTED from: {source} {f'({user_data})' if user_data else ''}")
        spin_data = {
            'spin_number': state.spin_number,
            'source': source,
            'estimated_duration_ms': self.estimated_duration_ms(state),
            'items': [{'id': item.id, 'name': item.label, 'image': item.image}
                      for item in state.items],
            'start_angle': state.trajectory.start_angle,
        }
        socketio.emit('spin_started', spin_data)
        return state

    def estimated_duration_ms(self, state):
        return int(state.trajectory.estimated_frames * 1000 / self.frame_rate)

    def _on_tick(self, frame):
        state = self.controller.state
        applied = getattr(state, 'frames_applied', 0)
        if not frame.settled and applied % self.tick_emit_every:
            return
        socketio.emit('spin_tick', {
            'angle': frame.angle,
            'velocity': frame.velocity,
            'highlighted_id': frame.highlighted_item.id if frame.highlighted_item else None,
            'highlighted_name': frame.highlighted_item.label if frame.highlighted_item else None,
        })

    def _on_settle(self, outcome):
        with self._lock:
            source, ip_address = self._spin_context.pop(outcome.spin_number, ('unknown', None))
            self.last_winner = outcome.item.label if outcome.item is not None else outcome.item_id
        record = self.store.record_spin(outcome, source=source, ip_address=ip_address)
        winner = self.store.get_item(outcome.item_id)

        logger.info(f"📡 Emitting spin_complete: winner={self.last_winner}")
        socketio.emit('spin_complete', {
            'outcome': outcome.to_dict(),
            'winner': winner,
            'spin': record,
        })
        socketio.emit('state_update', self.get_dashboard_state())

    # -- status -----------------------------------------------------------

    def get_status(self):
        highlighted = self.controller.highlighted_item
        return {
            'is_spinning': self.controller.is_spinning,
            'angle': self.controller.angle,
            'highlighted_id': highlighted.id if highlighted else None,
            'highlighted_name': highlighted.label if highlighted else None,
            'connected_clients': len(self.connected_clients),
            'total_spins_session': self.controller.total_spins,
            'last_winner': self.last_winner,
            'last_spin_source': self.last_spin_source,
        }

    def get_dashboard_state(self):
        items = self.store.list_items()
        history = self.store.list_spins()
        uptime_hours = (time.time() - self.performance_metrics['start_time']) / 3600
        return {
            'stats': {
                'total_spins': len(history),
                'session_spins': self.controller.total_spins,
                'active_items': sum(1 for item in items if item.get('active', True)),
                'last_spin': history[0]['timestamp'] if history else 'Never',
                'connected_clients': len(self.connected_clients),
                'peak_concurrent': self.performance_metrics['peak_concurrent'],
                'uptime_hours': f"{uptime_hours:.1f}",
                'last_winner': self.last_winner,
            },
            'history': history[:30],
            'wheel_status': self.get_status(),
        }

    def add_client(self, client_id):
        with self._lock:
            self.connected_clients.add(client_id)
            self.performance_metrics['total_connections'] += 1
            self.performance_metrics['peak_concurrent'] = max(
                len(self.connected_clients),
                self.performance_metrics['peak_concurrent'],
            )

    def remove_client(self, client_id):
        with self._lock:
            self.connected_clients.discard(client_id)

    def render_png(self):
        if self.controller.is_spinning:
            image = self.renderer.snapshot()
        else:
            self.controller.render()
            image = self.renderer.snapshot()
        buffer = io.BytesIO()
        image.save(buffer, format='PNG')
        buffer.seek(0)
        return buffer

    def close(self):
        self.controller.close()
        if self.asset_loader is not None:
            self.asset_loader.close()


def _service():
    return current_app.extensions['spinwheel']


def allowed_file(filename, allowed_extensions):
    """Check if file has allowed extension"""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in allowed_extensions


def _error(error, message, status):
    return jsonify({'error': error, 'message': message}), status


# ==============================================================================
# ITEM ENDPOINTS
# ==============================================================================

@api.route('/api/items', methods=['GET'])
def get_items():
    return jsonify({'items': _service().store.list_items()})


@api.route('/api/items/active', methods=['GET'])
def get_active_items():
    return jsonify({'items': _service().store.active_items()})


@api.route('/api/items', methods=['POST'])
def add_item():
    """Add a new item"""
    data = request.get_json(silent=True) or {}
    try:
        item = _service().store.create_item(data)
    except ItemValidationError as e:
        return _error('invalid_item', str(e), 400)
    except Exception as e:
        logger.error(f"💥 Add item error: {e}")
        return _error('server_error', 'Failed to create item', 500)
    return jsonify({'message': 'Item added successfully', 'item': item}), 201


@api.route('/api/items/<item_id>', methods=['PUT'])
def update_item(item_id):
    """Update an existing item; the running spin keeps its own snapshot"""
    data = request.get_json(silent=True) or {}
    try:
        item = _service().store.update_item(item_id, data)
    except ItemValidationError as e:
        return _error('invalid_item', str(e), 400)
    except Exception as e:
        logger.error(f"💥 Update item error: {e}")
        return _error('server_error', 'Failed to update item', 500)
    if item is None:
        return _error('not_found', 'Item not found', 404)
    _service().controller.invalidate()
    return jsonify({'message': 'Item updated successfully', 'item': item})


@api.route('/api/items/<item_id>', methods=['DELETE'])
def delete_item(item_id):
    try:
        deleted = _service().store.delete_item(item_id)
    except Exception as e:
        logger.error(f"💥 Delete item error: {e}")
        return _error('server_error', 'Failed to delete item', 500)
    if not deleted:
        return _error('not_found', 'Item not found', 404)
    _service().controller.invalidate()
    return jsonify({'message': 'Item deleted successfully'})


# ==============================================================================
# SPIN ENDPOINTS
# ==============================================================================

@api.route('/api/spin', methods=['POST'])
def trigger_spin_api():
    """Remote spin trigger; shares the single-flight rule with every other source"""
    service = _service()
    data = request.get_json(silent=True) or {}
    user_info = data.get('user_info', 'api_client')
    source_info = data.get('source', 'rest_api')
    ip_address = request.headers.get('X-Forwarded-For') or request.remote_addr

    try:
        state = service.trigger_spin(source=f'api_{source_info}', user_data=user_info,
                                     ip_address=ip_address)
    except AlreadySpinningError as e:
        return jsonify({
            'success': False,
            'error': 'wheel_busy',
            'message': str(e),
            'is_spinning': True,
            'wheel_status': service.get_status(),
            'timestamp': datetime.now().isoformat(),
        }), 409
    except EmptySelectionError as e:
        return _error('no_items', str(e), 400)
    except NoWeightError as e:
        return _error('no_weight', str(e), 400)

    return jsonify({
        'success': True,
        'message': 'Spin triggered successfully',
        'spin_number': state.spin_number,
        'estimated_duration_ms': service.estimated_duration_ms(state),
        'timestamp': datetime.now().isoformat(),
    })


@api.route('/api/spin/status')
def get_spin_status():
    status = _service().get_status()
    status['timestamp'] = datetime.now().isoformat()
    return jsonify(status)


@api.route('/api/spins', methods=['GET'])
def get_spins():
    return jsonify({'spins': _service().store.list_spins()})


@api.route('/api/spins', methods=['DELETE'])
def clear_spins():
    """Clear spin history"""
    if not _service().store.clear_spins():
        return _error('server_error', 'Failed to clear history', 500)
    logger.info("🗑️ Spin history cleared")
    return jsonify({'message': 'History cleared successfully'})


@api.route('/api/spins/export.csv')
def export_csv():
    """Export spin history as CSV"""
    history = _service().store.list_spins()
    if not history:
        return _error('not_found', 'No history data to export', 404)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['Timestamp', 'Item Name', 'Item ID', 'Spin Number', 'Source', 'IP Address'])
    for record in history:
        writer.writerow([
            record.get('timestamp', ''),
            record.get('item_name', ''),
            record.get('item_id', ''),
            record.get('spin_number', ''),
            record.get('source', ''),
            record.get('ip_address') or '',
        ])

    logger.info(f"📊 CSV export generated with {len(history)} records")
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={
            'Content-Disposition': f'attachment; filename=spin_history_{datetime.now().strftime("%Y%m%d_%H%M%S")}.csv'
        },
    )


@api.route('/api/wheel.png')
def wheel_image():
    return send_file(_service().render_png(), mimetype='image/png')


# ==============================================================================
# ODDS ENDPOINTS
# ==============================================================================

@api.route('/api/odds')
def get_odds_analysis():
    """Per-item probability of the wheel as it would spin right now"""
    items = _service().store.wheel_items()
    if not items:
        return _error('no_items', 'No active items found', 400)

    analysis = [
        {'id': item.id, 'name': item.label, 'weight': item.weight, 'probability': chance * 100}
        for item, chance in zip(items, probabilities(items))
    ]
    ranked = sorted(analysis, key=lambda x: x['probability'], reverse=True)
    return jsonify({
        'active_items': len(items),
        'total_weight': sum(item.weight for item in items),
        'items': analysis,
        'most_likely': ranked[0],
        'least_likely': ranked[-1],
    })


@api.route('/api/odds/simulate', methods=['POST'])
def simulate_spins():
    """Simulate many draws to check the distribution against the weights"""
    data = request.get_json(silent=True) or {}
    try:
        draws = max(1, min(int(data.get('simulations', 1000)), MAX_SIMULATIONS))
    except (TypeError, ValueError):
        return _error('invalid_request', 'simulations must be an integer', 400)

    items = _service().store.wheel_items()
    try:
        counts = simulate(items, draws, random.Random(data.get('seed')))
    except EmptySelectionError as e:
        return _error('no_items', str(e), 400)
    except NoWeightError as e:
        return _error('no_weight', str(e), 400)

    results = [
        {
            'id': item.id,
            'name': item.label,
            'expected_percentage': chance * 100,
            'actual_percentage': counts[item.id] / draws * 100,
            'count': counts[item.id],
        }
        for item, chance in zip(items, probabilities(items))
    ]
    return jsonify({'simulations': draws, 'results': results})


# ==============================================================================
# CONFIG AND UPLOADS
# ==============================================================================

@api.route('/api/config', methods=['GET'])
def get_config():
    return jsonify({'config': current_app.config['SPINWHEEL']})


@api.route('/api/config', methods=['POST'])
def update_config():
    """Persist settings; engine settings take effect on the next start"""
    data = request.get_json(silent=True) or {}
    try:
        config = save_config(current_app.config['DATA_DIR'], data)
    except (TypeError, ValueError) as e:
        return _error('invalid_config', str(e), 400)
    except OSError as e:
        logger.error(f"💥 Save config error: {e}")
        return _error('server_error', 'Failed to save configuration', 500)
    logger.info(f"⚙️ Configuration updated: {sorted(k for k in data if k in config)}")
    return jsonify({'message': 'Configuration saved successfully', 'config': config})


@api.route('/api/upload/image', methods=['POST'])
def upload_image():
    """Upload an item image; returns the reference to store on the item"""
    if 'file' not in request.files:
        return _error('invalid_request', 'No file provided', 400)

    file = request.files['file']
    if file.filename == '':
        return _error('invalid_request', 'No file selected', 400)

    if not allowed_file(file.filename, ALLOWED_IMAGE_EXTENSIONS):
        return _error('invalid_type',
                      f'Invalid file type. Allowed: {", ".join(sorted(ALLOWED_IMAGE_EXTENSIONS))}', 400)

    try:
        Image.open(file.stream).verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        return _error('invalid_type', 'File is not a readable image', 400)
    file.stream.seek(0)

    extension = file.filename.rsplit('.', 1)[1].lower()
    filename = f"upload-{uuid.uuid4().hex[:10]}.{extension}"
    upload_folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(upload_folder, exist_ok=True)
    file.save(os.path.join(upload_folder, filename))

    logger.info(f"🖼️ Image uploaded: {filename}")
    return jsonify({
        'success': True,
        'path': f"/images/{filename}",
        'message': 'File uploaded successfully',
    })


# ==============================================================================
# ERROR HANDLERS
# ==============================================================================

@api.app_errorhandler(404)
def not_found(error):
    return _error('Not found', 'Endpoint not found', 404)


@api.app_errorhandler(413)
def file_too_large(error):
    return _error('File too large', 'File exceeds the upload size limit', 413)


@api.app_errorhandler(400)
def bad_request(error):
    return _error('Bad request', str(error), 400)


@api.app_errorhandler(500)
def internal_error(error):
    logger.error(f"💥 Internal server error: {error}")
    return _error('Internal server error', str(error), 500)


# ==============================================================================
# SOCKET.IO EVENT HANDLERS
# ==============================================================================

@socketio.on('connect')
def handle_connect():
    service = _service()
    service.add_client(request.sid)
    logger.info(f"🔌 Client connected: {request.sid} (Total: {len(service.connected_clients)})")
    socketio.emit('state_update', service.get_dashboard_state(), to=request.sid)
    socketio.emit('connection_confirmed', {
        'client_id': request.sid,
        'server_time': datetime.now().isoformat(),
        'total_clients': len(service.connected_clients),
        'wheel_status': service.get_status(),
    }, to=request.sid)


@socketio.on('disconnect')
def handle_disconnect(*args):
    service = _service()
    service.remove_client(request.sid)
    logger.info(f"🔌 Client disconnected: {request.sid} (Remaining: {len(service.connected_clients)})")


@socketio.on('trigger_spin_from_web')
def handle_web_spin_request(data=None):
    """Web-triggered spin; rejections are already broadcast by the service"""
    user_info = data.get('user_info', 'anonymous') if data else 'web_client'
    logger.info(f"🌐 Web spin request from client {request.sid}: {user_info}")
    try:
        _service().trigger_spin(source='web_interface', user_data=user_info)
    except (AlreadySpinningError, EmptySelectionError, NoWeightError):
        logger.warning(f"🌐 Web spin from {request.sid} was rejected")


@socketio.on('request_state_update')
def handle_state_request():
    socketio.emit('state_update', _service().get_dashboard_state(), to=request.sid)


# ==============================================================================
# STARTUP AND INITIALIZATION
# ==============================================================================

def initialize_default_files(data_dir):
    """Seed config and a starter set of items on first run"""
    settings = load_config(data_dir)
    store = ItemStore(data_dir, history_limit=settings['history_limit'])
    if not os.path.exists(store.items_path):
        for item in DEFAULT_ITEMS:
            store.create_item(item)
    history = load_json_file(store.spins_path, [])
    logger.info(f"🔒 Data initialized: {len(store.list_items())} items, {len(history)} history records")


def create_app(data_dir=None, config=None, clock=None, asset_loader=None):
    data_dir = data_dir or os.environ.get('SPINWHEEL_DATA_DIR', 'data')
    settings = load_config(data_dir, config)

    app = Flask(__name__, static_folder=os.path.abspath(settings['static_root']),
                static_url_path='')
    app.config.update(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'spinwheel-dev-secret'),
        UPLOAD_FOLDER=settings['upload_folder'],
        MAX_CONTENT_LENGTH=settings['max_upload_mb'] * 1024 * 1024,
        DATA_DIR=data_dir,
        SPINWHEEL=settings,
    )
    socketio.init_app(app, cors_allowed_origins="*", ping_timeout=60, ping_interval=25)

    if clock is None:
        clock = SocketIOClock(socketio, frame_rate=settings['frame_rate'])
    if asset_loader is None:
        asset_loader = AssetLoader(settings['static_root'], timeout=settings['asset_timeout_seconds'])

    store = ItemStore(data_dir, history_limit=settings['history_limit'])
    app.extensions['spinwheel'] = WheelService(store, settings, clock, asset_loader)
    app.register_blueprint(api)
    return app


def main():
    data_dir = os.environ.get('SPINWHEEL_DATA_DIR', 'data')
    port = int(os.environ.get('PORT', 5000))
    configure_logging(load_config(data_dir))
    initialize_default_files(data_dir)
    app = create_app(data_dir)

    logger.info("🎪 SPIN WHEEL 🎪")
    logger.info("=" * 60)
    logger.info(f"🎲 Remote Spin:  http://0.0.0.0:{port}/api/spin")
    logger.info(f"📡 Spin Status:  http://0.0.0.0:{port}/api/spin/status")
    logger.info(f"🖼️ Wheel Frame:  http://0.0.0.0:{port}/api/wheel.png")
    logger.info(f"🎯 Odds:         http://0.0.0.0:{port}/api/odds")
    logger.info("=" * 60)

    try:
        socketio.run(app, host='0.0.0.0', port=port, debug=False, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        logger.info("🛑 Server shutdown requested")
    finally:
        app.extensions['spinwheel'].close()
        logger.info("✅ Clean shutdown complete")


if __name__ == '__main__':
    main()
