"""
Upstream Connector - Connexion HTTP vers une caméra
===================================================

Un connecteur = une requête GET vers le flux MJPEG/FLV d'une caméra,
lue dans un thread dédié. Les événements sont livrés au listener dans
l'ordre, depuis ce seul thread:

    on_upstream_headers -> on_upstream_data* -> on_upstream_end | on_upstream_error

Après abort(), plus aucun événement n'est livré.

Le délai de connexion couvre la réception des headers: une caméra qui
accepte la socket sans jamais répondre est signalée en UpstreamTimeout
après connect_timeout, quel que soit read_timeout.
"""

import logging
import threading
from typing import Optional

import requests

from .errors import (
    UpstreamConnectFailure,
    UpstreamMidStreamFailure,
    UpstreamStatusError,
    UpstreamTimeout,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'FRC-Replay-System/1.0'


class UpstreamConnector:
    """Connexion unique vers le flux d'une caméra"""

    def __init__(
        self,
        camera_key: str,
        url: str,
        listener,
        session: Optional[requests.Session] = None,
        connect_timeout: float = 15.0,
        read_timeout: float = 30.0,
        chunk_size: int = 8192,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        self.camera_key = camera_key
        self.url = url
        self.listener = listener
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.chunk_size = chunk_size
        self.user_agent = user_agent

        self._session = session or requests.Session()
        self._owns_session = session is None
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None
        self._aborted = False
        self._finished = False
        self._headers_received = False
        self._watchdog: Optional[threading.Timer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    def connect(self) -> "UpstreamConnector":
        """Démarrer la connexion (non bloquant)"""
        if self._thread is not None:
            raise RuntimeError(f"Connector for {self.camera_key} already started")

        logger.info(f"[STREAM] Connecting to camera: {self.camera_key} at {self.url}")
        self._watchdog = threading.Timer(self.connect_timeout, self._on_connect_timeout)
        self._watchdog.daemon = True
        self._watchdog.start()

        self._thread = threading.Thread(
            target=self._run,
            name=f"upstream-{self.camera_key}",
            daemon=True
        )
        self._thread.start()
        return self

    def abort(self):
        """
        Couper la connexion

        Idempotent, non bloquant, utilisable depuis n'importe quel état
        et n'importe quel thread (y compris avant les headers).
        """
        with self._lock:
            if self._aborted:
                return
            self._aborted = True
            response = self._response
            watchdog, self._watchdog = self._watchdog, None

        if watchdog is not None:
            watchdog.cancel()
        logger.info(f"[STREAM] Aborting upstream connection for {self.camera_key}")
        if response is not None:
            try:
                response.close()
            except Exception as e:
                logger.warning(f"[STREAM] Error aborting request for {self.camera_key}: {e}")
        if self._owns_session:
            # Ferme aussi une connexion encore en attente des headers
            self._session.close()

    def _run(self):
        try:
            response = self._session.get(
                self.url,
                stream=True,
                timeout=(self.connect_timeout, self.read_timeout),
                headers={'User-Agent': self.user_agent}
            )
        except requests.exceptions.Timeout as e:
            self._emit_error(UpstreamTimeout(f"Camera timed out: {e}"))
            self._release()
            return
        except requests.exceptions.RequestException as e:
            self._emit_error(UpstreamConnectFailure(str(e)))
            self._release()
            return

        with self._lock:
            aborted = self._aborted
            if not aborted:
                self._response = response

        try:
            if aborted:
                return

            logger.info(f"[STREAM] Response from {self.camera_key}: {response.status_code}")
            if response.status_code != 200:
                self._emit_error(UpstreamStatusError(response.status_code))
                return

            if not self._mark_headers_received():
                return
            if not self._deliver('on_upstream_headers', response.status_code, response.headers):
                return

            self._pump(response)
        finally:
            response.close()
            self._release()

    def _mark_headers_received(self) -> bool:
        """False si le délai de connexion a déjà été signalé"""
        with self._lock:
            if self._finished or self._aborted:
                return False
            self._headers_received = True
            watchdog, self._watchdog = self._watchdog, None
        if watchdog is not None:
            watchdog.cancel()
        return True

    def _on_connect_timeout(self):
        with self._lock:
            if self._headers_received or self._finished or self._aborted:
                return
            self._finished = True
            self._watchdog = None

        error = UpstreamTimeout(f"Camera did not answer within {self.connect_timeout}s")
        logger.error(f"[STREAM] Connection error for {self.camera_key}: {error}")
        self._deliver('on_upstream_error', error)
        self.abort()

    def _pump(self, response: requests.Response):
        try:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if self._aborted:
                    return
                if chunk:
                    self._deliver('on_upstream_data', chunk)
        except Exception as e:
            # Après abort(), la fermeture de la réponse fait échouer la lecture
            if self._aborted:
                logger.debug(f"[STREAM] Read interrupted by abort for {self.camera_key}: {e}")
                return
            logger.error(f"[STREAM] Camera stream error for {self.camera_key}: {e}")
            self._emit_error(UpstreamMidStreamFailure(str(e)))
            return

        if not self._aborted:
            logger.info(f"[STREAM] Camera stream ended: {self.camera_key}")
            self._emit_terminal('on_upstream_end')

    def _emit_error(self, error: Exception):
        if not self._aborted:
            logger.error(f"[STREAM] Connection error for {self.camera_key}: {error}")
        self._emit_terminal('on_upstream_error', error)

    def _emit_terminal(self, event: str, *args):
        with self._lock:
            if self._finished or self._aborted:
                return
            self._finished = True
            watchdog, self._watchdog = self._watchdog, None
        if watchdog is not None:
            watchdog.cancel()
        self._deliver(event, *args)

    def _deliver(self, event: str, *args) -> bool:
        if self._aborted:
            return False
        try:
            getattr(self.listener, event)(self, *args)
        except Exception as e:
            logger.error(f"[STREAM] Listener failed on {event} for {self.camera_key}: {e}", exc_info=True)
        return not self._aborted

    def _release(self):
        if self._owns_session:
            self._session.close()
