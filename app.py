import base64
import csv
import hmac
import io
import logging
import os
import socket
from datetime import datetime
from functools import wraps
from io import BytesIO

import qrcode
from flask import Blueprint, Flask, Response, current_app, jsonify, request
from flask_socketio import SocketIO

from prize_wheel.config_store import ConfigStore
from prize_wheel.controller import WheelController
from prize_wheel.errors import StoreUnavailable, WheelError, WriteFailed
from prize_wheel.record_store import RecordStore
from prize_wheel.settings import load_config
from prize_wheel.spin import TickScheduler
from prize_wheel.sync import join_items, parse_items

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - [%(name)s] - %(message)s',
    handlers=[
        logging.FileHandler('prize_wheel.log'),
        logging.StreamHandler()
    ]
)

DEFAULT_DATA_DIR = os.environ.get('PRIZE_WHEEL_DATA_DIR', 'data')

socketio = SocketIO(cors_allowed_origins="*", ping_timeout=60, ping_interval=25)
api = Blueprint('api', __name__)


def get_controller():
    return current_app.extensions['prize_wheel']['controller']


def get_stores():
    state = current_app.extensions['prize_wheel']
    return state['config_store'], state['record_store']


def serialize_records(records, limit=None):
    """Records for the history view, newest first; unacknowledged ones show as pending"""
    rows = []
    for record in (records[:limit] if limit else records):
        row = record.to_dict()
        row['pending'] = record.pending
        if record.pending:
            row['display_time'] = 'Pending...'
        else:
            stamp = datetime.fromisoformat(record.timestamp).astimezone()
            row['display_time'] = stamp.strftime('%Y-%m-%d %H:%M:%S')
        rows.append(row)
    return rows


def moderator_required(view):
    """Privileged path: only the moderator may overwrite the config or wipe records"""
    @wraps(view)
    def wrapper(*args, **kwargs):
        expected = current_app.config['WHEEL']['moderator_token']
        supplied = request.headers.get('X-Moderator-Token', '')
        auth_header = request.headers.get('Authorization', '')
        if not supplied and auth_header.startswith('Bearer '):
            supplied = auth_header[len('Bearer '):]
        if not supplied or not hmac.compare_digest(supplied.encode(), expected.encode()):
            logging.warning(f"🔐 Moderator request refused: {request.method} {request.path}")
            return jsonify({'error': 'forbidden', 'message': 'Moderator token required'}), 403
        return view(*args, **kwargs)
    return wrapper


# ==============================================================================
# SPIN FLOW
# ==============================================================================

def trigger_spin_flow(sid):
    """
    Start a spin for one participant and stream it back to their socket.

    Frames carry only the rotation; the prize label is sent once the spin has
    finished. Results reach every other client through the records subscription.
    """
    controller = get_controller()

    def on_start(spin, spin_number):
        socketio.emit('spin_started', {
            'spin_number': spin_number,
            'spin_duration': spin.total,
            'tick_ms': spin.tick_ms,
            'start_angle': spin.angle,
            'item_count': spin.item_count,
        }, to=sid)

    def on_frame(spin):
        socketio.emit('spin_frame', {
            'angle': spin.angle,
            'elapsed': spin.elapsed,
            'total': spin.total,
            'progress': spin.progress,
        }, to=sid)

    def on_complete(outcome):
        logging.info(f"📡 Emitting spin_complete: {outcome.user} -> {outcome.prize}")
        socketio.emit('spin_complete', outcome.to_dict(), to=outcome.sid)
        if isinstance(outcome.error, WriteFailed):
            socketio.emit('notice', outcome.error.to_payload(), to=outcome.sid)

    try:
        controller.start_spin(sid, on_start=on_start, on_frame=on_frame, on_complete=on_complete)
        return True
    except WheelError as e:
        logging.warning(f"🔄 Spin from {sid} BLOCKED: {e}")
        socketio.emit('spin_rejected', {
            'reason': e.error_type,
            'message': str(e),
            'timestamp': datetime.now().isoformat()
        }, to=sid)
        return False


# ==============================================================================
# API ENDPOINTS
# ==============================================================================

@api.route('/')
def root():
    """Basic ping"""
    return jsonify({'ok': True, 'service': 'prize-wheel'})


@api.route('/api/config', methods=['GET'])
def get_wheel_config():
    """Current prize list, or the defaults while no config has been saved"""
    config_store, _ = get_stores()
    try:
        items = config_store.get()
    except StoreUnavailable as e:
        logging.error(f"💥 Get config error: {e}")
        return jsonify({'error': 'config_unavailable', 'message': str(e)}), 503
    document_exists = items is not None
    if not document_exists:
        items = list(current_app.config['WHEEL']['default_items'])
    return jsonify({
        'items': items,
        'text': join_items(items),
        'document_exists': document_exists,
    })


@api.route('/api/config', methods=['POST'])
@moderator_required
def save_wheel_config():
    """Replace the prize list; accepts {"items": [...]} or free text {"text": "..."}"""
    data = request.get_json(silent=True) or {}
    if 'items' in data:
        items = data['items']
    elif 'text' in data:
        items = parse_items(data['text'])
    else:
        return jsonify({'error': 'Missing required field: items or text'}), 400

    config_store, _ = get_stores()
    try:
        items = config_store.set(items)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except StoreUnavailable as e:
        logging.error(f"💥 Save config error: {e}")
        return jsonify({'error': 'Error saving configuration.', 'message': str(e)}), 503

    return jsonify({
        'message': 'Wheel Updated! All players will see these changes immediately.',
        'items': items,
    })


@api.route('/api/records', methods=['GET'])
def get_records():
    """Play history, newest first"""
    _, record_store = get_stores()
    try:
        records = record_store.all_records()
    except StoreUnavailable as e:
        logging.error(f"💥 Get records error: {e}")
        return jsonify({'error': 'store_unavailable', 'message': str(e)}), 503
    limit = current_app.config['WHEEL']['history_limit']
    return jsonify({'records': serialize_records(records, limit), 'count': len(records)})


@api.route('/api/records', methods=['DELETE'])
@moderator_required
def clear_records():
    """Delete every play record; afterwards every name may play again"""
    _, record_store = get_stores()
    report = record_store.delete_all()
    body = {'deleted': report.deleted, 'total': report.total, 'complete': report.complete}
    if report.error:
        body.update({'error': 'Error deleting data.', 'message': report.error})
        return jsonify(body), 503
    if report.total == 0:
        body['message'] = 'No records to delete.'
    else:
        body['message'] = 'All records have been wiped.'
    return jsonify(body)


@api.route('/api/export/csv')
@moderator_required
def export_csv():
    """Export play records as CSV"""
    _, record_store = get_stores()
    try:
        records = record_store.all_records()
    except StoreUnavailable as e:
        logging.error(f"💥 Export CSV error: {e}")
        return jsonify({'error': str(e)}), 503

    if not records:
        return jsonify({'error': 'No history data to export'}), 404

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['Timestamp', 'User', 'Result', 'Record ID'])
    for record in records:
        writer.writerow([record.timestamp or '', record.user, record.result, record.id or ''])

    logging.info(f"📊 CSV export generated with {len(records)} records")
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={
            'Content-Disposition': f'attachment; filename=prize_wheel_records_{datetime.now().strftime("%Y%m%d_%H%M%S")}.csv'
        }
    )


@api.route('/api/qr_code')
def generate_qr_code():
    """QR code pointing participants at the wheel"""
    url = current_app.config['WHEEL']['public_url']
    if not url:
        host = request.host
        if host.startswith('127.0.0.1') or host.startswith('localhost'):
            # Use the LAN address so phones on the event network can reach us
            port = host.split(':', 1)[1] if ':' in host else '5000'
            s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                s.connect(('8.8.8.8', 80))
                host = f"{s.getsockname()[0]}:{port}"
            except OSError:
                pass
            finally:
                s.close()
        url = f"http://{host}/"

    try:
        qr = qrcode.QRCode(version=1, box_size=10, border=5)
        qr.add_data(url)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = BytesIO()
        img.save(buffer, format='PNG')
        img_str = base64.b64encode(buffer.getvalue()).decode()
    except (OSError, ValueError) as e:
        logging.error(f"💥 QR Code generation failed: {e}")
        return jsonify({'error': 'Failed to generate QR code'}), 500

    return jsonify({'qr_code': f"data:image/png;base64,{img_str}", 'url': url})


@api.route('/api/spin/status')
def get_spin_status():
    """Connected participants and spin counters"""
    return jsonify({
        **get_controller().get_status(),
        'timestamp': datetime.now().isoformat()
    })


# ==============================================================================
# ERROR HANDLERS
# ==============================================================================

@api.app_errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Not found', 'message': 'Endpoint not found'}), 404


@api.app_errorhandler(400)
def bad_request(error):
    return jsonify({'error': 'Bad request', 'message': str(error)}), 400


@api.app_errorhandler(500)
def internal_error(error):
    logging.error(f"💥 Internal server error: {error}")
    return jsonify({'error': 'Internal server error', 'message': str(error)}), 500


# ==============================================================================
# SOCKET.IO EVENT HANDLERS
# ==============================================================================

def _wheel_payload(items, using_defaults=False):
    return {
        'items': items,
        'text': join_items(items),
        'count': len(items),
        'using_defaults': using_defaults,
    }


@socketio.on('connect')
def handle_connect(auth=None):
    controller = get_controller()
    session = controller.connect(request.sid)
    logging.info(f"🔌 Client connected: {request.sid} (Total: {len(controller.sessions)})")
    socketio.emit('wheel_config', _wheel_payload(session.items, controller.sync.using_defaults), to=request.sid)
    socketio.emit('connection_confirmed', {
        'client_id': request.sid,
        'server_time': datetime.now().isoformat(),
        'total_clients': len(controller.sessions),
    }, to=request.sid)


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    controller = get_controller()
    controller.disconnect(request.sid)
    logging.info(f"🔌 Client disconnected: {request.sid} (Remaining: {len(controller.sessions)})")


@socketio.on('login')
def handle_login(data=None):
    name = (data or {}).get('name', '')
    try:
        session = get_controller().login(request.sid, name)
    except WheelError as e:
        socketio.emit('login_result', {'success': False, **e.to_payload()}, to=request.sid)
        return
    socketio.emit('login_result', {
        'success': True,
        'name': session.name,
        'message': f"Welcome, {session.name}!",
    }, to=request.sid)


@socketio.on('shuffle')
def handle_shuffle(data=None):
    try:
        items = get_controller().shuffle(request.sid)
    except WheelError as e:
        socketio.emit('notice', e.to_payload(), to=request.sid)
        return
    socketio.emit('wheel_items', _wheel_payload(items), to=request.sid)


@socketio.on('edit_items')
def handle_edit_items(data=None):
    text = (data or {}).get('text', '')
    try:
        items = get_controller().edit_items(request.sid, text)
    except WheelError as e:
        socketio.emit('notice', e.to_payload(), to=request.sid)
        return
    socketio.emit('wheel_items', _wheel_payload(items), to=request.sid)


@socketio.on('restore_items')
def handle_restore_items(data=None):
    try:
        items = get_controller().restore_items(request.sid)
    except WheelError as e:
        socketio.emit('notice', e.to_payload(), to=request.sid)
        return
    socketio.emit('wheel_items', _wheel_payload(items), to=request.sid)


@socketio.on('spin')
def handle_spin_request(data=None):
    logging.info(f"🌐 Spin request from client {request.sid}")
    trigger_spin_flow(request.sid)


@socketio.on('request_state')
def handle_state_request(data=None):
    controller = get_controller()
    try:
        session = controller.get_session(request.sid)
    except WheelError as e:
        socketio.emit('notice', e.to_payload(), to=request.sid)
        return
    socketio.emit('state_update', {
        'session': session.to_dict(),
        'status': controller.get_status(),
    }, to=request.sid)


# ==============================================================================
# STARTUP AND INITIALIZATION
# ==============================================================================

def create_app(data_dir=None, overrides=None, scheduler=None, rng=None):
    """
    Build the Flask app, its stores and the wheel controller.

    Raises ConfigUnavailable when the store cannot be reached; the server cannot
    run without it.
    """
    data_dir = data_dir or DEFAULT_DATA_DIR
    config_store = ConfigStore(data_dir)
    config_store.check_connection()

    wheel_config = load_config(data_dir, overrides)
    record_store = RecordStore(data_dir, case_sensitive_names=wheel_config['case_sensitive_names'])

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.environ.get('PRIZE_WHEEL_SECRET', 'prize-wheel-live-dev'),
        DATA_DIR=data_dir,
        WHEEL=wheel_config,
    )
    app.register_blueprint(api)
    socketio.init_app(app)

    scheduler = scheduler or TickScheduler(socketio.start_background_task, socketio.sleep)
    controller = WheelController(config_store, record_store, wheel_config, scheduler, rng=rng)

    def broadcast_items(items):
        socketio.emit('wheel_config', _wheel_payload(items, controller.sync.using_defaults))

    def broadcast_records(records):
        socketio.emit('records_update', {
            'records': serialize_records(records, wheel_config['history_limit']),
            'count': len(records),
        })

    def report_sync_error(error):
        socketio.emit('notice', error.to_payload())

    controller.sync.add_listener(broadcast_items)
    controller.start()
    records_subscription = record_store.subscribe_ordered_by_timestamp_desc(
        broadcast_records, on_error=report_sync_error, name='records_broadcast')

    app.extensions['prize_wheel'] = {
        'controller': controller,
        'config_store': config_store,
        'record_store': record_store,
        'subscriptions': [records_subscription],
    }
    logging.info(f"🔒 Prize wheel initialized: data_dir={data_dir}, {len(controller.sync.items)} items")
    return app


def shutdown(app):
    """Cancel store subscriptions and stop config sync; the stores stay readable"""
    state = app.extensions['prize_wheel']
    for subscription in state['subscriptions']:
        subscription.cancel()
    state['controller'].stop()
    logging.info("🛑 Prize wheel subscriptions cancelled")


if __name__ == '__main__':
    try:
        app = create_app()
        host = os.environ.get('PRIZE_WHEEL_HOST', '0.0.0.0')
        port = int(os.environ.get('PRIZE_WHEEL_PORT', '5000'))

        logging.info("🎪 PRIZE WHEEL LIVE 🎪")
        logging.info("=" * 60)
        logging.info(f"🎲 Participants: ws://{host}:{port}/socket.io")
        logging.info(f"⚙️ Wheel config: http://{host}:{port}/api/config")
        logging.info(f"📊 Records:      http://{host}:{port}/api/records")
        logging.info(f"📱 QR Code API:  http://{host}:{port}/api/qr_code")
        logging.info(f"📡 Spin Status:  http://{host}:{port}/api/spin/status")
        logging.info("=" * 60)

        try:
            socketio.run(app, host=host, port=port, debug=False, allow_unsafe_werkzeug=True)
        except KeyboardInterrupt:
            logging.info("🛑 Server shutdown requested")
        finally:
            shutdown(app)

    except WheelError as e:
        logging.error(f"💥 Server startup failed: {e}")
        raise SystemExit(1)
