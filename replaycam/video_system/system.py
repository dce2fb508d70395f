"""
Video System - Assemblage des composants pour une application
=============================================================

Caméras (lecture seule) -> StreamManager (proxy live)
                        -> RecordingManager <- MatchOrchestrator
"""

import logging
from typing import Dict, Optional

from .config import CameraConfig, load_camera_config, resolve_ffmpeg
from .match_orchestrator import MatchOrchestrator
from .match_state import MatchStateStore
from .recording import RecordingManager
from .stream_manager import StreamManager

logger = logging.getLogger(__name__)


class VideoSystem:
    """Composants vidéo d'une application Flask"""

    def __init__(
        self,
        cameras: Dict[str, CameraConfig],
        stream_manager: StreamManager,
        recording_manager: RecordingManager,
        orchestrator: MatchOrchestrator
    ):
        self.cameras = cameras
        self.stream_manager = stream_manager
        self.recording_manager = recording_manager
        self.orchestrator = orchestrator
        self._shut_down = False

    @classmethod
    def from_config(cls, config, cameras: Optional[Dict[str, CameraConfig]] = None,
                    connector_factory=None, popen=None) -> "VideoSystem":
        """
        Construire le système depuis la configuration Flask

        Args:
            config: Mapping de configuration (app.config)
            cameras: Caméras déjà chargées (sinon lues depuis CAMERA_CONFIG_PATH)
            connector_factory: Fabrique de connecteurs upstream (tests)
            popen: Remplaçant de subprocess.Popen (tests)
        """
        if cameras is None:
            cameras = load_camera_config(config['CAMERA_CONFIG_PATH'])

        ffmpeg_path = config.get('FFMPEG_PATH', 'ffmpeg')
        try:
            ffmpeg_path = resolve_ffmpeg(ffmpeg_path)
            logger.info(f"✅ FFmpeg detected: {ffmpeg_path}")
        except FileNotFoundError:
            logger.warning(f"⚠️ ffmpeg executable not found: '{ffmpeg_path}', recordings will fail to start")

        stream_manager = StreamManager(
            cameras,
            idle_timeout=float(config.get('STREAM_IDLE_TIMEOUT', 0)),
            connect_timeout=float(config.get('UPSTREAM_CONNECT_TIMEOUT', 15)),
            read_timeout=float(config.get('UPSTREAM_READ_TIMEOUT', 30)),
            max_queue_chunks=int(config.get('CLIENT_QUEUE_CHUNKS', 256)),
            connector_factory=connector_factory
        )

        recording_kwargs = {}
        if popen is not None:
            recording_kwargs['popen'] = popen
        recording_manager = RecordingManager(
            cameras,
            recordings_dir=config['RECORDINGS_DIR'],
            ffmpeg_path=ffmpeg_path,
            grace_period=float(config.get('RECORDING_STOP_GRACE_SECONDS', 5)),
            **recording_kwargs
        )

        orchestrator = MatchOrchestrator(
            recording_manager,
            camera_keys=list(cameras),
            state_store=MatchStateStore(config['MATCH_STATE_PATH']),
            match_duration=float(config.get('MATCH_DURATION_SECONDS', 155))
        )
        logger.info(f"Next match will be recorded as: match{orchestrator.current_match_number}_[camera]_[timestamp].mp4")

        return cls(cameras, stream_manager, recording_manager, orchestrator)

    def shutdown(self):
        """Arrêt complet (idempotent)"""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info('Shutdown signal received...')
        self.orchestrator.shutdown()
        self.recording_manager.shutdown()
        self.stream_manager.shutdown()
