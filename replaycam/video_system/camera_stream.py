"""
Camera Stream - Agrégat par caméra
==================================

Une instance par clé caméra: connexion upstream, état, clients abonnés,
timer de nettoyage. Une instance terminée (erreur, nettoyage, arrêt) est
"retirée" et remplacée dans le registre, jamais réinitialisée sur place.

Transitions:
    IDLE -> CONNECTING        premier client
    CONNECTING -> CONNECTED   upstream 200, headers envoyés à tous les clients
    CONNECTING -> ERROR       502/504 aux clients en attente
    CONNECTED -> ERROR        erreur en cours de flux, clients terminés
    CONNECTED -> IDLE         fin upstream / plus de clients / arrêt
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Optional, Set

from requests.structures import CaseInsensitiveDict

from .client_sink import ClientSink
from .config import CameraConfig
from .errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = 'video/x-flv'


class StreamState(str, Enum):
    IDLE = 'IDLE'
    CONNECTING = 'CONNECTING'
    CONNECTED = 'CONNECTED'
    ERROR = 'ERROR'


class CameraStream:
    """État partagé d'une caméra et de ses clients"""

    def __init__(
        self,
        camera: CameraConfig,
        connector_factory: Callable,
        on_terminated: Optional[Callable] = None,
        idle_timeout: float = 0.0
    ):
        """
        Args:
            camera: Configuration de la caméra
            connector_factory: f(camera, listener) -> connecteur non démarré
            on_terminated: f(stream, replace) appelé une fois l'instance retirée
            idle_timeout: Délai de grâce sans client avant fermeture (0 = immédiat)
        """
        self.camera = camera
        self.key = camera.key
        self.idle_timeout = idle_timeout

        self._connector_factory = connector_factory
        self._on_terminated = on_terminated
        self._lock = threading.Lock()

        self.state = StreamState.IDLE
        self.clients: Set[ClientSink] = set()
        self.upstream = None
        self.response_headers: Optional[Dict[str, str]] = None
        self._idle_timer: Optional[threading.Timer] = None
        self._idle_generation = 0
        self._retired = False

    def __repr__(self):
        return f"<CameraStream {self.key} {self.state.value} clients={len(self.clients)}>"

    @property
    def retired(self) -> bool:
        return self._retired

    # ======================
    # CLIENTS
    # ======================

    def subscribe(self, sink: ClientSink) -> bool:
        """
        Abonner un client

        Returns:
            False si l'instance est retirée (l'appelant doit relire le registre)
        """
        with self._lock:
            if self.state == StreamState.ERROR:
                sink.fail(502, 'Camera stream has failed')
                return True
            if self._retired:
                return False

            self._cancel_idle_timer()
            self.clients.add(sink)
            logger.info(f"[STREAM] Client connected to {self.key}. Total clients: {len(self.clients)}")

            if self.state == StreamState.CONNECTED:
                sink.send_headers(self.response_headers)
            elif self.state == StreamState.IDLE:
                self._connect()
            return True

    def unsubscribe(self, sink: ClientSink):
        """Retirer un client (fermeture de sa connexion)"""
        with self._lock:
            removed = sink in self.clients
            self.clients.discard(sink)
            empty = removed and not self.clients
            if removed:
                logger.info(f"[STREAM] Client disconnected from {self.key}. Remaining clients: {len(self.clients)}")
        sink.close()

        if empty:
            self._schedule_idle_cleanup()

    def _connect(self):
        # Appelé sous self._lock
        self.state = StreamState.CONNECTING
        self.upstream = self._connector_factory(self.camera, self)
        self.upstream.connect()

    # ======================
    # ÉVÉNEMENTS UPSTREAM
    # ======================

    def on_upstream_headers(self, connector, status_code: int, headers):
        with self._lock:
            if connector is not self.upstream or self.state != StreamState.CONNECTING:
                return

            headers = CaseInsensitiveDict(headers or {})
            self.response_headers = {
                'Content-Type': headers.get('Content-Type') or DEFAULT_CONTENT_TYPE
            }
            self.state = StreamState.CONNECTED
            logger.info(f"[STREAM] Successfully connected to camera: {self.key}")

            for sink in self.clients:
                sink.send_headers(self.response_headers)

    def on_upstream_data(self, connector, chunk: bytes):
        with self._lock:
            if connector is not self.upstream or self.state != StreamState.CONNECTED:
                return

            # Pas de modification de l'ensemble pendant le parcours
            dead = [sink for sink in self.clients if not sink.write(chunk)]
            for sink in dead:
                self.clients.discard(sink)
                sink.close()
            empty = bool(dead) and not self.clients

        if dead:
            logger.info(f"[STREAM] Removed {len(dead)} unwritable client(s) from {self.key}")
        if empty:
            self._schedule_idle_cleanup()

    def on_upstream_error(self, connector, error: Exception):
        status_code = getattr(error, 'status_code', UpstreamError.status_code)
        with self._lock:
            if connector is not self.upstream:
                return

            previous = self.state
            self.state = StreamState.ERROR
            self.upstream = None
            self._retired = True
            self._cancel_idle_timer()
            sinks = list(self.clients)
            self.clients.clear()

        if previous == StreamState.CONNECTING:
            logger.error(f"[STREAM] Broadcasting error for {self.key}: {error}")
        else:
            logger.error(f"[STREAM] Camera stream error for {self.key}: {error}")
            status_code = UpstreamError.status_code

        for sink in sinks:
            sink.fail(status_code, f"Camera error: {error}")

        connector.abort()
        self._notify_terminated(replace=True)

    def on_upstream_end(self, connector):
        self._teardown(f"Camera stream ended: {self.key}", expected=connector)

    # ======================
    # NETTOYAGE
    # ======================

    def disconnect(self, reason: str) -> bool:
        """Fermer l'upstream quel que soit le nombre de clients"""
        return self._teardown(reason)

    def _schedule_idle_cleanup(self):
        with self._lock:
            if self.clients or self._retired:
                return
            if self.idle_timeout > 0:
                self._cancel_idle_timer()
                self._idle_generation += 1
                self._idle_timer = threading.Timer(
                    self.idle_timeout,
                    self._on_idle_timeout,
                    args=(self._idle_generation,)
                )
                self._idle_timer.daemon = True
                self._idle_timer.start()
                logger.info(f"[STREAM] No clients for {self.key}. Cleanup in {self.idle_timeout}s.")
                return

        logger.info(f"[STREAM] No clients for {self.key}. Cleaning up immediately.")
        self._teardown(f"No clients left for {self.key}.", only_if_idle=True)

    def _on_idle_timeout(self, generation: int):
        with self._lock:
            if generation != self._idle_generation:
                return
            self._idle_timer = None
        self._teardown(f"No clients left for {self.key}.", only_if_idle=True)

    def _cancel_idle_timer(self):
        # Appelé sous self._lock
        self._idle_generation += 1
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _teardown(self, reason: str, expected=None, only_if_idle: bool = False) -> bool:
        with self._lock:
            if self._retired:
                return False
            if expected is not None and expected is not self.upstream:
                return False
            if only_if_idle and self.clients:
                return False

            self._retired = True
            self._cancel_idle_timer()
            upstream, self.upstream = self.upstream, None
            self.state = StreamState.IDLE
            self.response_headers = None
            sinks = list(self.clients)
            self.clients.clear()

        logger.info(f"[STREAM] Cleaning up connection for {self.key}. Reason: {reason}")
        for sink in sinks:
            sink.fail(503, 'Stream disconnected by server.')
        if upstream is not None:
            upstream.abort()
        self._notify_terminated(replace=False)
        return True

    def _notify_terminated(self, replace: bool):
        if self._on_terminated is not None:
            self._on_terminated(self, replace)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                'camera': self.key,
                'state': self.state.value,
                'clients': len(self.clients),
                'content_type': (self.response_headers or {}).get('Content-Type'),
                'idle_cleanup_pending': self._idle_timer is not None
            }
