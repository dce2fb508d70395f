"""
Tests d'intégration de l'API HTTP (client de test Flask)
Caméras via connecteurs scriptés, FFmpeg simulé
"""
from unittest.mock import Mock, patch

import pytest

from replaycam.video_system import UpstreamConnectFailure, UpstreamTimeout


def stream_clip(connector):
    connector.emit_headers({'Content-Type': 'video/x-flv'})
    connector.emit_data(b'abc')
    connector.emit_data(b'def')
    connector.emit_end()


@pytest.mark.integration
class TestStreamEndpoint:

    def test_unknown_camera_404(self, client, app):
        response = client.get('/stream?camera=nope')

        assert response.status_code == 404
        assert response.mimetype == 'text/plain'
        assert app.extensions['video_system'].stream_manager.get_stream('nope') is None

    def test_missing_camera_parameter_404(self, client):
        assert client.get('/stream').status_code == 404

    def test_stream_relays_headers_and_bytes(self, client, connector_factory):
        connector_factory.script = stream_clip

        response = client.get('/stream?camera=field1')

        assert response.status_code == 200
        assert response.headers['Content-Type'] == 'video/x-flv'
        assert response.headers['Cache-Control'] == 'no-cache'
        assert response.data == b'abcdef'
        assert len(connector_factory.created) == 1

    def test_connection_refused_502(self, client, connector_factory):
        connector_factory.script = lambda c: c.emit_error(UpstreamConnectFailure('[Errno 111] Connection refused'))

        response = client.get('/stream?camera=field1')

        assert response.status_code == 502
        assert b'Connection refused' in response.data

    def test_connect_timeout_504(self, client, connector_factory):
        connector_factory.script = lambda c: c.emit_error(UpstreamTimeout('Camera timed out'))
        assert client.get('/stream?camera=field2').status_code == 504

    def test_streams_status_and_disconnect(self, client):
        data = client.get('/api/streams').get_json()
        assert set(data) == {'field1', 'field2'}
        assert data['field1']['state'] == 'IDLE'

        response = client.post('/api/streams/field1/disconnect')
        assert response.status_code == 200
        assert response.get_json()['disconnected'] is False

        assert client.post('/api/streams/nope/disconnect').status_code == 404


@pytest.mark.integration
class TestCameraEndpoint:

    def test_camera_config_shape(self, client):
        data = client.get('/api/cameras').get_json()
        assert data['field1'] == {'name': 'Field 1', 'ip': '10.0.0.5', 'port': 8080, 'path': '/video'}

    def test_cors_allows_any_origin(self, client):
        response = client.get('/api/cameras', headers={'Origin': 'http://192.168.1.20:3000'})
        assert response.headers['Access-Control-Allow-Origin'] == '*'


@pytest.mark.integration
class TestMatchEndpoints:

    def test_match_lifecycle(self, client, fake_popen):
        response = client.post('/api/match-event', json={'eventType': 'MATCH_START', 'isManual': True})
        data = response.get_json()
        assert response.status_code == 200
        assert data['success'] is True
        assert data['gameState'] == 'RECORDING'
        assert data['currentMatchNumber'] == 1
        assert len(fake_popen.processes) == 2

        # Deuxième déclenchement ignoré
        data = client.post('/api/match-event', json={'eventType': 'MATCH_START'}).get_json()
        assert data['currentMatchNumber'] == 1
        assert len(fake_popen.processes) == 2

        data = client.post('/api/match-event', json={'eventType': 'MATCH_ABORT', 'isManual': True}).get_json()
        assert data['gameState'] == 'WAITING'
        assert data['currentMatchNumber'] == 2
        assert data['matchEndedBy'] == 'manual'

        state = client.get('/api/match-state').get_json()
        assert state['gameState'] == 'WAITING'
        assert state['isRecording'] is False
        assert state['currentMatchNumber'] == 2

    def test_abort_when_waiting_keeps_number(self, client):
        data = client.post('/api/match-event', json={'eventType': 'MATCH_ABORT'}).get_json()
        assert data['currentMatchNumber'] == 1

    def test_unknown_event_400(self, client):
        response = client.post('/api/match-event', json={'eventType': 'MATCH_PAUSE'})
        assert response.status_code == 400
        assert 'error' in response.get_json()

    def test_invalid_match_number_400(self, client):
        response = client.post('/api/match-event', json={'eventType': 'MATCH_START', 'matchNumber': 'abc'})
        assert response.status_code == 400


@pytest.mark.integration
class TestRecordingEndpoints:

    def test_manual_recording(self, client, fake_popen):
        response = client.post('/api/recording/field1/start')
        assert response.status_code == 200
        assert response.get_json()['recording']['camera'] == 'field1'

        assert client.post('/api/recording/field1/start').status_code == 409

        active = client.get('/api/recording/active').get_json()
        assert [r['camera'] for r in active['recordings']] == ['field1']

        assert client.post('/api/recording/field1/stop').status_code == 200
        assert fake_popen.processes[0].stdin.data == b'q\n'
        assert client.post('/api/recording/field1/stop').status_code == 404

    def test_unknown_camera(self, client):
        assert client.post('/api/recording/nope/start').status_code == 404
        assert client.post('/api/recording/nope/stop').status_code == 404

    def test_list_recordings_newest_first(self, client, test_config):
        from pathlib import Path
        recordings = Path(test_config.RECORDINGS_DIR)
        (recordings / 'match1_field1_2024-03-01T10-00-00.mp4').write_bytes(b'x')
        (recordings / 'match2_field1_2024-03-01T10-10-00.mp4').write_bytes(b'xy')
        (recordings / 'notes.txt').write_text('ignored')

        data = client.get('/api/recordings').get_json()

        assert data == ['match2_field1_2024-03-01T10-10-00.mp4', 'match1_field1_2024-03-01T10-00-00.mp4']

    def test_video_info(self, client, test_config):
        from pathlib import Path
        (Path(test_config.RECORDINGS_DIR) / 'match3_field2_x.mp4').write_bytes(b'12345')

        data = client.get('/api/video-info/match3_field2_x.mp4').get_json()
        assert data['size'] == 5
        assert 'created' in data and 'modified' in data

        assert client.get('/api/video-info/absent.mp4').status_code == 404

    def test_video_info_rejects_traversal(self, client, test_config):
        from pathlib import Path
        Path(test_config.MATCH_STATE_PATH).write_text('{}')
        response = client.get('/api/video-info/..%2Fmatch_state.json')
        assert response.status_code in (400, 404)
        assert 'size' not in (response.get_json() or {})


@pytest.mark.integration
class TestSettingsEndpoints:

    def test_threshold_default_then_saved(self, client):
        response = client.get('/api/threshold')
        assert response.get_json() == {'threshold': 20}
        assert isinstance(response.get_json()['threshold'], int)

        assert client.post('/api/threshold', json={'threshold': 35}).status_code == 200
        assert client.get('/api/threshold').get_json() == {'threshold': 35}

    def test_fingerprints(self, client):
        assert client.get('/api/fingerprints').get_json() == {}

        response = client.post('/api/fingerprints', json={'name': 'horn', 'mfcc': [0.1, 0.2, 0.3]})
        assert response.get_json() == {'success': True, 'name': 'horn'}

        stored = client.get('/api/fingerprints').get_json()['horn']
        assert stored['mfcc'] == [0.1, 0.2, 0.3]
        assert stored['description'] is None

        assert client.delete('/api/fingerprints/horn').get_json() == {'success': True, 'deleted': 'horn'}
        assert client.delete('/api/fingerprints/horn').status_code == 404

    def test_fingerprint_requires_mfcc(self, client):
        assert client.post('/api/fingerprints', json={'name': 'horn'}).status_code == 400


@pytest.mark.integration
class TestHealthEndpoint:

    @patch('replaycam.services.monitoring_service.psutil')
    def test_health(self, mock_psutil, client):
        mock_psutil.disk_usage.return_value = Mock(percent=40.0, free=60 * 1024 ** 3, total=100 * 1024 ** 3)
        mock_psutil.virtual_memory.return_value = Mock(percent=30.0)
        mock_psutil.cpu_percent.return_value = 3.0

        response = client.get('/api/health')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['service'] == 'replaycam'
        assert data['cameras'] == 2
        assert data['gameState'] == 'WAITING'

    def test_unknown_endpoint(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json() == {'error': 'API endpoint not found.'}
