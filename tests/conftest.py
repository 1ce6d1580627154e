import random

import pytest

from prize_wheel.config_store import ConfigStore
from prize_wheel.controller import WheelController
from prize_wheel.record_store import RecordStore
from prize_wheel.settings import DEFAULT_CONFIG, normalize_config
from prize_wheel.spin import TickScheduler

MODERATOR_TOKEN = 'test-moderator-token'

FAST_SPIN = {
    'spin_duration_ms_min': 500,
    'spin_duration_ms_max': 700,
    'tick_ms': 30,
    'moderator_token': MODERATOR_TOKEN,
    'public_url': 'http://wheel.test/',
}


class InlineScheduler(TickScheduler):
    """Runs the whole spin synchronously inside run()"""

    def __init__(self):
        self.sleeps = []
        super().__init__(start_task=lambda target, *args: target(*args), sleep=self.sleeps.append)


class DeferredScheduler(TickScheduler):
    """Queues spins so a test can act while they are in flight"""

    def __init__(self):
        self.pending = []
        super().__init__(start_task=self._queue, sleep=lambda seconds: None)

    def _queue(self, target, *args):
        self.pending.append((target, args))

    def run_pending(self):
        while self.pending:
            target, args = self.pending.pop(0)
            target(*args)


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def config_store(data_dir):
    return ConfigStore(data_dir)


@pytest.fixture
def record_store(data_dir):
    return RecordStore(data_dir)


@pytest.fixture
def wheel_config():
    return normalize_config({**DEFAULT_CONFIG, **FAST_SPIN})


def make_controller(config_store, record_store, wheel_config, scheduler):
    controller = WheelController(config_store, record_store, wheel_config, scheduler, rng=random.Random(42))
    controller.start()
    return controller


@pytest.fixture
def controller(config_store, record_store, wheel_config):
    controller = make_controller(config_store, record_store, wheel_config, InlineScheduler())
    yield controller
    controller.stop()


@pytest.fixture
def flask_app(data_dir):
    import app as wheel_app

    app = wheel_app.create_app(
        data_dir,
        overrides=FAST_SPIN,
        scheduler=InlineScheduler(),
        rng=random.Random(7),
    )
    yield app
    wheel_app.shutdown(app)


@pytest.fixture
def http(flask_app):
    return flask_app.test_client()


@pytest.fixture
def socket_client(flask_app):
    import app as wheel_app

    client = wheel_app.socketio.test_client(flask_app)
    yield client
    if client.is_connected():
        client.disconnect()


@pytest.fixture
def new_socket_client(flask_app):
    import app as wheel_app

    clients = []

    def factory():
        client = wheel_app.socketio.test_client(flask_app)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        if client.is_connected():
            client.disconnect()


@pytest.fixture
def moderator_headers():
    return {'X-Moderator-Token': MODERATOR_TOKEN}
