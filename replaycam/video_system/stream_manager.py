"""
Stream Manager - Registre des flux caméra
=========================================

Responsabilités:
- Au plus une connexion upstream par caméra
- Partager le flux entre un nombre quelconque de clients
- Connexion à la demande, nettoyage quand plus personne ne regarde
- Remplacement atomique d'un flux en erreur (le prochain client repart de IDLE)
"""

import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, Optional

from .camera_stream import CameraStream
from .client_sink import ClientSink
from .config import CameraConfig
from .errors import CameraNotFound
from .upstream import UpstreamConnector

logger = logging.getLogger(__name__)


class StreamManager:
    """Gestionnaire des flux caméra partagés"""

    def __init__(
        self,
        cameras: Dict[str, CameraConfig],
        idle_timeout: float = 0.0,
        connect_timeout: float = 15.0,
        read_timeout: float = 30.0,
        max_queue_chunks: int = 256,
        connector_factory: Optional[Callable] = None
    ):
        """
        Args:
            cameras: Configuration caméra (lecture seule)
            idle_timeout: Délai de grâce sans client (0 = fermeture immédiate)
            connect_timeout: Timeout de connexion upstream (secondes)
            read_timeout: Timeout de lecture upstream (secondes)
            max_queue_chunks: Taille de la file par client
            connector_factory: f(camera, listener) -> connecteur (tests)
        """
        self.cameras = dict(cameras)
        self.idle_timeout = idle_timeout
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_queue_chunks = max_queue_chunks

        self._connector_factory = connector_factory or self._default_connector
        self._streams: Dict[str, CameraStream] = {}
        self._connections_opened: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()
        self._counter_lock = threading.Lock()
        logger.info(f"🎥 StreamManager initialized for {len(self.cameras)} camera(s), idle timeout {idle_timeout}s")

    def _default_connector(self, camera: CameraConfig, listener) -> UpstreamConnector:
        return UpstreamConnector(
            camera_key=camera.key,
            url=camera.url,
            listener=listener,
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout
        )

    def _open_connector(self, camera: CameraConfig, listener):
        # Appelé sous le verrou du CameraStream
        with self._counter_lock:
            self._connections_opened[camera.key] += 1
        return self._connector_factory(camera, listener)

    def _create_stream(self, camera: CameraConfig) -> CameraStream:
        return CameraStream(
            camera=camera,
            connector_factory=self._open_connector,
            on_terminated=self._on_stream_terminated,
            idle_timeout=self.idle_timeout
        )

    def _get_or_create(self, camera: CameraConfig) -> CameraStream:
        with self._lock:
            stream = self._streams.get(camera.key)
            if stream is None or stream.retired:
                stream = self._create_stream(camera)
                self._streams[camera.key] = stream
            return stream

    def _on_stream_terminated(self, stream: CameraStream, replace: bool):
        """Remplacer ou supprimer une instance retirée (si elle est toujours enregistrée)"""
        with self._lock:
            if self._streams.get(stream.key) is not stream:
                return
            if replace:
                self._streams[stream.key] = self._create_stream(stream.camera)
            else:
                del self._streams[stream.key]

    def proxy_stream(self, client_id: str, camera_key: str, sink: Optional[ClientSink] = None) -> ClientSink:
        """
        Abonner un client au flux d'une caméra

        Args:
            client_id: Identifiant du client (logs)
            camera_key: Clé caméra
            sink: Sink à utiliser (créé si absent)

        Returns:
            Le sink, qui recevra headers puis chunks, ou une réponse terminale

        Raises:
            CameraNotFound: clé inconnue (aucune entrée créée)
        """
        logger.info(f"[STREAM] Proxy request for camera: {camera_key}")
        camera = self.cameras.get(camera_key)
        if camera is None:
            logger.error(f"[STREAM] Camera not found: {camera_key}")
            raise CameraNotFound(camera_key)

        if sink is None:
            sink = ClientSink(client_id, max_queue_chunks=self.max_queue_chunks)

        while True:
            stream = self._get_or_create(camera)
            if stream.subscribe(sink):
                return sink

    def unsubscribe(self, camera_key: str, sink: ClientSink):
        """Désabonner un client (déconnexion, fin de réponse)"""
        with self._lock:
            stream = self._streams.get(camera_key)
        if stream is not None:
            stream.unsubscribe(sink)
        else:
            sink.close()

    def disconnect(self, camera_key: str) -> bool:
        """
        Forcer la fermeture de l'upstream d'une caméra (opérateur)

        Returns:
            True si une connexion active a été fermée
        """
        if camera_key not in self.cameras:
            raise CameraNotFound(camera_key)

        with self._lock:
            stream = self._streams.get(camera_key)
        if stream is None:
            return False
        return stream.disconnect(f"Disconnected by operator: {camera_key}")

    def get_stream(self, camera_key: str) -> Optional[CameraStream]:
        with self._lock:
            return self._streams.get(camera_key)

    def connection_count(self, camera_key: str) -> int:
        """Nombre de connexions upstream ouvertes pour une caméra"""
        with self._counter_lock:
            return self._connections_opened.get(camera_key, 0)

    def status(self) -> dict:
        with self._lock:
            streams = dict(self._streams)
        with self._counter_lock:
            opened = dict(self._connections_opened)

        result = {}
        for key in self.cameras:
            stream = streams.get(key)
            if stream is not None:
                info = stream.to_dict()
            else:
                info = {'camera': key, 'state': 'IDLE', 'clients': 0,
                        'content_type': None, 'idle_cleanup_pending': False}
            info['connections_opened'] = opened.get(key, 0)
            result[key] = info
        return result

    def shutdown(self):
        """Fermer tous les flux"""
        logger.info('[STREAM] Shutting down StreamManager...')
        with self._lock:
            streams = list(self._streams.values())
            self._streams.clear()
        for stream in streams:
            stream.disconnect('Server shutdown.')
        logger.info(f"✅ {len(streams)} stream(s) closed")
