"""
ReplayCam Video System
======================

Pipeline: Caméra IP -> StreamManager -> clients HTTP (live)
          Caméra IP -> FFmpeg -> MP4 (un fichier par caméra et par match)

Composants:
- UpstreamConnector: Connexion HTTP vers une caméra
- CameraStream: Agrégat par caméra (état, clients, nettoyage)
- StreamManager: Registre des flux, point d'entrée proxy_stream
- RecordingManager / RecordingProcess: Encodeurs FFmpeg
- MatchOrchestrator: Fenêtre d'enregistrement des matchs
"""

from .camera_stream import CameraStream, StreamState
from .client_sink import ClientSink
from .config import CameraConfig, load_camera_config
from .errors import (
    CameraConfigError,
    CameraNotFound,
    ProcessSpawnFailure,
    ReplayCamError,
    UpstreamConnectFailure,
    UpstreamError,
    UpstreamMidStreamFailure,
    UpstreamStatusError,
    UpstreamTimeout,
)
from .match_orchestrator import GameState, MatchEvent, MatchOrchestrator
from .match_state import MatchState, MatchStateStore
from .recording import RecordingManager, RecordingProcess
from .stream_manager import StreamManager
from .system import VideoSystem
from .upstream import UpstreamConnector

__all__ = [
    'CameraConfig',
    'CameraConfigError',
    'CameraNotFound',
    'CameraStream',
    'ClientSink',
    'GameState',
    'MatchEvent',
    'MatchOrchestrator',
    'MatchState',
    'MatchStateStore',
    'ProcessSpawnFailure',
    'RecordingManager',
    'RecordingProcess',
    'ReplayCamError',
    'StreamManager',
    'StreamState',
    'UpstreamConnectFailure',
    'UpstreamConnector',
    'UpstreamError',
    'UpstreamMidStreamFailure',
    'UpstreamStatusError',
    'UpstreamTimeout',
    'VideoSystem',
    'load_camera_config'
]
