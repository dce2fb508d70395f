"""
Tests d'intégration de l'UpstreamConnector et du StreamManager
contre un vrai serveur HTTP local (caméra simulée)
"""
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from conftest import wait_until
from replaycam.video_system import (
    CameraConfig,
    StreamManager,
    UpstreamConnectFailure,
    UpstreamConnector,
    UpstreamStatusError,
    UpstreamTimeout,
)


class FakeCamera:
    """Caméra HTTP: /clip (flux fini), /live (flux continu), autre chemin = 404"""

    def __init__(self):
        self.stop = threading.Event()
        self.requests = 0
        camera = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                pass

            def do_GET(self):
                camera.requests += 1
                if self.path not in ('/clip', '/live'):
                    self.send_error(404)
                    return

                self.send_response(200)
                self.send_header('Content-Type', 'video/x-flv')
                self.end_headers()
                try:
                    if self.path == '/clip':
                        for chunk in (b'FLV', b'frame1', b'frame2'):
                            self.wfile.write(chunk)
                            self.wfile.flush()
                        return
                    while not camera.stop.is_set():
                        self.wfile.write(b'frame')
                        self.wfile.flush()
                        time.sleep(0.02)
                except (BrokenPipeError, ConnectionResetError):
                    return

        self.server = ThreadingHTTPServer(('127.0.0.1', 0), Handler)
        self.server.daemon_threads = True
        self.port = self.server.server_address[1]
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def url(self, path):
        return f"http://127.0.0.1:{self.port}{path}"

    def start(self):
        self.thread.start()
        return self

    def close(self):
        self.stop.set()
        self.server.shutdown()
        self.server.server_close()


class RecordingListener:
    """Listener qui journalise les événements reçus"""

    def __init__(self):
        self.events = []
        self.chunks = []
        self.headers = None
        self.error = None
        self.done = threading.Event()
        self.connected = threading.Event()

    def on_upstream_headers(self, connector, status_code, headers):
        self.events.append('headers')
        self.headers = headers
        self.connected.set()

    def on_upstream_data(self, connector, chunk):
        if self.events[-1] != 'data':
            self.events.append('data')
        self.chunks.append(chunk)

    def on_upstream_end(self, connector):
        self.events.append('end')
        self.done.set()

    def on_upstream_error(self, connector, error):
        self.events.append('error')
        self.error = error
        self.done.set()


@pytest.fixture
def fake_camera():
    camera = FakeCamera().start()
    yield camera
    camera.close()


def _closed_port():
    sock = socket.socket()
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.mark.integration
class TestUpstreamConnector:

    def test_stream_events_in_order(self, fake_camera):
        listener = RecordingListener()
        UpstreamConnector('cam', fake_camera.url('/clip'), listener, connect_timeout=2, read_timeout=2).connect()

        assert listener.done.wait(5)
        assert listener.events == ['headers', 'data', 'end']
        assert listener.headers['content-type'] == 'video/x-flv'
        assert b''.join(listener.chunks) == b'FLVframe1frame2'

    def test_non_200_is_an_error(self, fake_camera):
        listener = RecordingListener()
        UpstreamConnector('cam', fake_camera.url('/missing'), listener, connect_timeout=2, read_timeout=2).connect()

        assert listener.done.wait(5)
        assert listener.events == ['error']
        assert isinstance(listener.error, UpstreamStatusError)
        assert listener.error.upstream_status == 404
        assert listener.error.status_code == 502

    def test_connection_refused(self):
        listener = RecordingListener()
        url = f"http://127.0.0.1:{_closed_port()}/live"
        UpstreamConnector('cam', url, listener, connect_timeout=2, read_timeout=2).connect()

        assert listener.done.wait(5)
        assert isinstance(listener.error, UpstreamConnectFailure)
        assert not isinstance(listener.error, UpstreamTimeout)
        assert listener.error.status_code == 502

    @pytest.mark.slow
    def test_silent_camera_times_out(self):
        # Connexion acceptée par le noyau, jamais de réponse
        silent = socket.socket()
        silent.bind(('127.0.0.1', 0))
        silent.listen(1)
        try:
            listener = RecordingListener()
            url = f"http://127.0.0.1:{silent.getsockname()[1]}/live"
            UpstreamConnector('cam', url, listener, connect_timeout=1, read_timeout=0.3).connect()

            assert listener.done.wait(5)
            assert isinstance(listener.error, UpstreamTimeout)
            assert listener.error.status_code == 504
        finally:
            silent.close()

    def test_silent_camera_bounded_by_connect_timeout(self):
        # Headers attendus au plus connect_timeout, même avec un read_timeout long
        silent = socket.socket()
        silent.bind(('127.0.0.1', 0))
        silent.listen(1)
        try:
            listener = RecordingListener()
            url = f"http://127.0.0.1:{silent.getsockname()[1]}/live"
            started = time.monotonic()
            connector = UpstreamConnector('cam', url, listener, connect_timeout=0.5, read_timeout=4).connect()

            assert listener.done.wait(5)
            elapsed = time.monotonic() - started

            assert elapsed < 2.0
            assert isinstance(listener.error, UpstreamTimeout)
            assert listener.error.status_code == 504
            assert connector.aborted
            time.sleep(0.2)
            assert listener.events == ['error']
        finally:
            silent.close()

    def test_connect_timeout_does_not_cut_a_live_stream(self, fake_camera):
        listener = RecordingListener()
        connector = UpstreamConnector('cam', fake_camera.url('/live'), listener,
                                      connect_timeout=0.3, read_timeout=2).connect()
        try:
            assert listener.connected.wait(5)
            time.sleep(0.6)

            assert 'error' not in listener.events
            assert connector.aborted is False
        finally:
            connector.abort()

    def test_abort_stops_delivery(self, fake_camera):
        listener = RecordingListener()
        connector = UpstreamConnector('cam', fake_camera.url('/live'), listener,
                                      connect_timeout=2, read_timeout=2).connect()
        assert listener.connected.wait(5)

        connector.abort()
        connector.abort()
        time.sleep(0.1)
        received = len(listener.chunks)
        time.sleep(0.2)

        assert connector.aborted
        assert len(listener.chunks) == received
        assert 'end' not in listener.events
        assert 'error' not in listener.events

    def test_connect_twice_is_rejected(self, fake_camera):
        connector = UpstreamConnector('cam', fake_camera.url('/clip'), RecordingListener()).connect()
        with pytest.raises(RuntimeError):
            connector.connect()


@pytest.mark.integration
class TestStreamManagerLoopback:

    def test_two_clients_one_upstream_connection(self, fake_camera):
        cameras = {'field1': CameraConfig('field1', 'Field 1', '127.0.0.1', fake_camera.port, '/live')}
        manager = StreamManager(cameras, idle_timeout=0, connect_timeout=2, read_timeout=2)
        try:
            a = manager.proxy_stream('a', 'field1')
            assert a.wait_ready(5)
            b = manager.proxy_stream('b', 'field1')
            assert b.wait_ready(5)

            assert a.status_code == b.status_code == 200
            assert a.headers == b.headers == {'Content-Type': 'video/x-flv'}
            assert manager.connection_count('field1') == 1
            assert fake_camera.requests == 1

            assert next(b.iter_chunks()).startswith(b'frame')

            manager.unsubscribe('field1', a)
            assert manager.get_stream('field1').state.value == 'CONNECTED'
            manager.unsubscribe('field1', b)
            assert manager.get_stream('field1') is None
        finally:
            manager.shutdown()

    def test_refused_camera_answers_502_and_recovers(self):
        cameras = {'field1': CameraConfig('field1', 'Field 1', '127.0.0.1', _closed_port(), '/live')}
        manager = StreamManager(cameras, idle_timeout=0, connect_timeout=2, read_timeout=2)
        try:
            sinks = [manager.proxy_stream(f"c{i}", 'field1') for i in range(3)]
            for sink in sinks:
                assert sink.wait_ready(2)
                assert sink.status_code == 502

            assert wait_until(lambda: manager.get_stream('field1').state.value == 'IDLE')
        finally:
            manager.shutdown()
