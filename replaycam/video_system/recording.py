"""
Video Recorder - Enregistrement FFmpeg par caméra
==================================================

- Un processus FFmpeg par caméra, lancé au début d'un match
- Arrêt propre via 'q' sur stdin, kill forcé après le délai de grâce
- Thread de surveillance: logs stderr + notification de sortie
- La table des enregistrements est mise à jour à la sortie du processus,
  jamais supposée synchrone avec la demande d'arrêt
"""

import logging
import subprocess
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import CameraConfig
from .errors import CameraNotFound, ProcessSpawnFailure

logger = logging.getLogger(__name__)


def build_output_path(recordings_dir: Path, camera_key: str, match_number: int,
                      match_type: str = "match", now: Optional[datetime] = None) -> Path:
    """Nom déterministe: {type}{numéro}_{caméra}_{horodatage}.mp4"""
    now = now or datetime.now()
    timestamp = now.strftime('%Y-%m-%dT%H-%M-%S')
    prefix = ''.join(c for c in (match_type or 'match').lower() if c.isalnum()) or 'match'
    return Path(recordings_dir) / f"{prefix}{match_number}_{camera_key}_{timestamp}.mp4"


def build_ffmpeg_command(ffmpeg_path: str, input_url: str, output_path) -> List[str]:
    return [
        ffmpeg_path,
        '-hide_banner',
        '-y',
        '-timeout', '10000000',
        '-reconnect', '1',
        '-reconnect_streamed', '1',
        '-fflags', '+genpts',
        '-i', input_url,
        '-c:v', 'copy',
        '-c:a', 'aac',
        '-b:a', '128k',
        '-movflags', '+faststart',
        str(output_path)
    ]


class RecordingProcess:
    """Un encodeur FFmpeg lié à une caméra et à un match"""

    def __init__(
        self,
        camera_key: str,
        output_path: Path,
        match_number: int,
        match_type: str,
        command: List[str],
        on_exit: Optional[Callable] = None,
        popen: Callable = subprocess.Popen
    ):
        self.camera_key = camera_key
        self.output_path = Path(output_path)
        self.match_number = match_number
        self.match_type = match_type
        self.command = command
        self.start_time: Optional[float] = None
        self.returncode: Optional[int] = None
        self.process = None

        self._on_exit = on_exit
        self._popen = popen
        self._lock = threading.Lock()
        self._exited = threading.Event()
        self._escalation: Optional[threading.Timer] = None
        self._stop_requested = False

    def __repr__(self):
        return f"<RecordingProcess {self.camera_key} match={self.match_number}>"

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def running(self) -> bool:
        return self.process is not None and not self._exited.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def start(self):
        """
        Lancer l'encodeur

        Raises:
            ProcessSpawnFailure: l'exécutable n'a pas pu être lancé
        """
        logger.info(f"[RECORDING] Starting recording for \"{self.camera_key}\" to {self.output_path}")
        logger.debug(f"📝 FFmpeg command: {' '.join(self.command)}")

        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.process = self._popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise ProcessSpawnFailure(f"FFmpeg failed to start for {self.camera_key}: {e}") from e

        self.start_time = time.time()
        threading.Thread(
            target=self._monitor,
            name=f"ffmpeg-{self.camera_key}",
            daemon=True
        ).start()
        logger.info(f"✅ Recording started for {self.camera_key} (PID: {self.process.pid})")

    def _monitor(self):
        process = self.process
        stderr = process.stderr
        if stderr is not None:
            try:
                for raw in stderr:
                    line = raw.decode('utf-8', errors='replace').rstrip() if isinstance(raw, bytes) else raw.rstrip()
                    # Lignes de progression ignorées
                    if not line or 'frame=' in line or 'time=' in line:
                        continue
                    logger.info(f"[FFMPEG-{self.camera_key}] {line[:200]}")
            except (OSError, ValueError) as e:
                logger.debug(f"Error reading ffmpeg stream for {self.camera_key}: {e}")

        returncode = process.wait()
        self._handle_exit(returncode)

    def _handle_exit(self, returncode: int):
        with self._lock:
            if self._exited.is_set():
                return
            self.returncode = returncode
            self._exited.set()
            escalation, self._escalation = self._escalation, None
        if escalation is not None:
            escalation.cancel()

        duration = time.time() - self.start_time if self.start_time else 0.0
        if returncode == 0 or self._stop_requested:
            logger.info(f"[FFMPEG-{self.camera_key}] Process exited with code {returncode}.")
        else:
            logger.warning(f"[FFMPEG-{self.camera_key}] Process exited with code {returncode}.")
        logger.info(f"[RECORDING] Completed: {self.output_path} ({duration:.1f}s)")

        if self._on_exit is not None:
            try:
                self._on_exit(self, returncode)
            except Exception as e:
                logger.error(f"Exit notification failed for {self.camera_key}: {e}", exc_info=True)

    def stop_graceful(self, grace_period: float = 5.0):
        """
        Demander l'arrêt via 'q' sur stdin

        Si le processus n'est pas sorti après grace_period, il est tué.
        Non bloquant: la sortie est signalée par la notification de sortie.
        """
        if not self.running:
            return
        self._stop_requested = True

        try:
            self.process.stdin.write(b'q\n')
            self.process.stdin.flush()
            self.process.stdin.close()
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to send 'q' to FFmpeg ({self.camera_key}): {e}")
            self.stop_forced()
            return

        with self._lock:
            if self._exited.is_set() or self._escalation is not None:
                return
            self._escalation = threading.Timer(grace_period, self._escalate)
            self._escalation.daemon = True
            self._escalation.start()

    def _escalate(self):
        with self._lock:
            self._escalation = None
        if self.running:
            logger.warning(f"⚠️ FFmpeg for {self.camera_key} did not stop gracefully, killing")
            self.stop_forced()

    def stop_forced(self):
        """Tuer le processus (idempotent)"""
        if not self.running:
            return
        self._stop_requested = True
        try:
            self.process.kill()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.error(f"Error killing FFmpeg for {self.camera_key}: {e}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Attendre la notification de sortie"""
        return self._exited.wait(timeout)

    def to_dict(self) -> dict:
        return {
            'camera': self.camera_key,
            'output_path': str(self.output_path),
            'match_number': self.match_number,
            'match_type': self.match_type,
            'pid': self.pid,
            'start_time': datetime.fromtimestamp(self.start_time).isoformat() if self.start_time else None,
            'elapsed_seconds': int(time.time() - self.start_time) if self.start_time else 0,
            'stopping': self._stop_requested
        }


class RecordingManager:
    """Table des enregistrements actifs (clé caméra -> RecordingProcess)"""

    def __init__(
        self,
        cameras: Dict[str, CameraConfig],
        recordings_dir,
        ffmpeg_path: str = 'ffmpeg',
        grace_period: float = 5.0,
        popen: Callable = subprocess.Popen
    ):
        self.cameras = dict(cameras)
        self.recordings_dir = Path(recordings_dir)
        self.ffmpeg_path = ffmpeg_path
        self.grace_period = grace_period
        self._popen = popen

        self._active: Dict[str, RecordingProcess] = {}
        self._stopping: Dict[int, RecordingProcess] = {}
        self._lock = threading.Lock()

        self.recordings_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"🎬 RecordingManager initialized ({self.recordings_dir})")

    def start_recording(self, camera_key: str, match_number: int,
                        match_type: str = 'match') -> Optional[RecordingProcess]:
        """
        Démarrer l'enregistrement d'une caméra

        Returns:
            Le processus démarré, None si déjà actif ou si le lancement a échoué

        Raises:
            CameraNotFound: clé inconnue
        """
        camera = self.cameras.get(camera_key)
        if camera is None:
            logger.error(f"[RECORDING] Error: Camera key \"{camera_key}\" not found.")
            raise CameraNotFound(camera_key)

        output_path = build_output_path(self.recordings_dir, camera_key, match_number, match_type)
        with self._lock:
            if camera_key in self._active:
                logger.info(f"[RECORDING] Recording already active for {camera_key}")
                return None
            recording = RecordingProcess(
                camera_key=camera_key,
                output_path=output_path,
                match_number=match_number,
                match_type=match_type,
                command=build_ffmpeg_command(self.ffmpeg_path, camera.url, output_path),
                on_exit=self._on_process_exit,
                popen=self._popen
            )
            # Réservé avant le lancement: deux démarrages concurrents ne lancent qu'un processus
            self._active[camera_key] = recording

        try:
            recording.start()
        except ProcessSpawnFailure as e:
            logger.error(f"[FFMPEG-{camera_key}] Failed to start: {e}")
            with self._lock:
                if self._active.get(camera_key) is recording:
                    del self._active[camera_key]
            return None

        return recording

    def stop_recording(self, camera_key: str) -> bool:
        """Arrêter l'enregistrement d'une caméra (arrêt propre)"""
        with self._lock:
            recording = self._active.pop(camera_key, None)
            if recording is None:
                return False
            self._stopping[id(recording)] = recording

        logger.info(f"🛑 Stopping recording for {camera_key} (PID: {recording.pid})")
        recording.stop_graceful(self.grace_period)
        return True

    def stop_all(self) -> int:
        """Arrêter tous les enregistrements actifs"""
        with self._lock:
            keys = list(self._active)
        if not keys:
            return 0

        logger.info('[RECORDING] Stopping all recordings...')
        return sum(1 for key in keys if self.stop_recording(key))

    def _on_process_exit(self, recording: RecordingProcess, returncode: int):
        with self._lock:
            if self._active.get(recording.camera_key) is recording:
                del self._active[recording.camera_key]
            self._stopping.pop(id(recording), None)

    def is_recording(self, camera_key: str) -> bool:
        with self._lock:
            return camera_key in self._active

    def active_recordings(self) -> List[dict]:
        with self._lock:
            recordings = list(self._active.values())
        return [r.to_dict() for r in recordings]

    def stopping_count(self) -> int:
        with self._lock:
            return len(self._stopping)

    def shutdown(self, timeout: Optional[float] = None):
        """Arrêter tous les encodeurs et attendre leur sortie"""
        self.stop_all()
        with self._lock:
            pending = list(self._stopping.values())
        deadline = time.time() + (timeout if timeout is not None else self.grace_period + 1)
        for recording in pending:
            if not recording.wait(max(0.0, deadline - time.time())):
                recording.stop_forced()
        logger.info('✅ All recordings stopped')
