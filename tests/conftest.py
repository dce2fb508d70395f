"""
Configuration pytest pour ReplayCam
Fixtures partagées: caméras, connecteurs, processus et timers factices
"""
import threading
import time

import pytest

from replaycam.config import TestingConfig, config
from replaycam.main import create_app
from replaycam.video_system import CameraConfig


def wait_until(predicate, timeout=2.0, interval=0.01):
    """Attendre qu'une condition devienne vraie (threads de fond)"""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ======================
# CONNECTEUR UPSTREAM
# ======================

class FakeConnector:
    """
    Connecteur sans réseau

    Sans script, les événements sont émis par le test (emit_*).
    Avec un script, il est exécuté dans un thread comme le vrai lecteur.
    """

    def __init__(self, camera, listener, script=None):
        self.camera = camera
        self.listener = listener
        self.script = script
        self.connect_calls = 0
        self.aborted = False

    def connect(self):
        self.connect_calls += 1
        if self.script is not None:
            threading.Thread(target=self.script, args=(self,), daemon=True).start()
        return self

    def abort(self):
        self.aborted = True

    def emit_headers(self, headers=None, status=200):
        if not self.aborted:
            self.listener.on_upstream_headers(self, status, headers or {'Content-Type': 'video/x-flv'})

    def emit_data(self, chunk):
        if not self.aborted:
            self.listener.on_upstream_data(self, chunk)

    def emit_error(self, error):
        if not self.aborted:
            self.listener.on_upstream_error(self, error)

    def emit_end(self):
        if not self.aborted:
            self.listener.on_upstream_end(self)


class FakeConnectorFactory:
    """f(camera, listener) -> FakeConnector, avec historique"""

    def __init__(self, script=None):
        self.script = script
        self.created = []

    def __call__(self, camera, listener):
        connector = FakeConnector(camera, listener, script=self.script)
        self.created.append(connector)
        return connector

    @property
    def last(self):
        return self.created[-1]


# ======================
# PROCESSUS FFMPEG
# ======================

class FakeStdin:
    def __init__(self, process):
        self.process = process
        self.data = b''
        self.closed = False

    def write(self, data):
        if self.closed:
            raise ValueError('write to closed file')
        self.data += data

    def flush(self):
        pass

    def close(self):
        self.closed = True
        if self.process.exit_on_q and b'q' in self.data:
            self.process.finish(0)


class FakeProcess:
    """Processus FFmpeg simulé: sort sur 'q' (si exit_on_q) ou kill()"""

    _next_pid = 4000

    def __init__(self, command, exit_on_q=True, stderr_lines=None):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.command = command
        self.exit_on_q = exit_on_q
        self.stdin = FakeStdin(self)
        self.stderr = list(stderr_lines or [])
        self.returncode = None
        self.killed = False
        self._done = threading.Event()

    def finish(self, returncode):
        if self.returncode is None:
            self.returncode = returncode
        self._done.set()

    def kill(self):
        self.killed = True
        self.finish(-9)

    def wait(self, timeout=None):
        self._done.wait(timeout)
        return self.returncode


class FakePopen:
    """Remplaçant de subprocess.Popen"""

    def __init__(self, exit_on_q=True, stderr_lines=None, fail_with=None):
        self.exit_on_q = exit_on_q
        self.stderr_lines = stderr_lines
        self.fail_with = fail_with
        self.processes = []

    def __call__(self, command, **kwargs):
        if self.fail_with is not None:
            raise self.fail_with
        process = FakeProcess(command, exit_on_q=self.exit_on_q, stderr_lines=self.stderr_lines)
        self.processes.append(process)
        return process


# ======================
# TIMERS
# ======================

class FakeTimer:
    """Remplaçant de threading.Timer déclenché à la main"""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args, **self.kwargs)


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args=args, kwargs=kwargs)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.timers[-1]


# ======================
# FIXTURES
# ======================

@pytest.fixture
def cameras():
    return {
        'field1': CameraConfig(key='field1', name='Field 1', ip='10.0.0.5', port=8080, path='/video'),
        'field2': CameraConfig(key='field2', name='Field 2', ip='10.0.0.6', port=8080, path='/video'),
    }


@pytest.fixture
def connector_factory():
    return FakeConnectorFactory()


@pytest.fixture
def fake_popen():
    return FakePopen()


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configuration de test avec des fichiers dans tmp_path"""

    class TestConfig(TestingConfig):
        CAMERA_CONFIG_PATH = str(tmp_path / 'config.json')
        MATCH_STATE_PATH = str(tmp_path / 'match_state.json')
        THRESHOLD_PATH = str(tmp_path / 'threshold.json')
        FINGERPRINTS_PATH = str(tmp_path / 'fingerprints.json')
        RECORDINGS_DIR = str(tmp_path / 'recordings')
        FFMPEG_PATH = 'ffmpeg'

    monkeypatch.setitem(config, 'testing', TestConfig)
    return TestConfig


@pytest.fixture
def app(test_config, cameras, connector_factory, fake_popen):
    """Fixture de l'application Flask pour les tests"""
    app = create_app('testing', cameras=cameras, connector_factory=connector_factory, popen=fake_popen)
    yield app
    app.extensions['video_system'].shutdown()


@pytest.fixture
def client(app):
    """Client de test Flask"""
    return app.test_client()
