"""
Client Sink - Une réponse HTTP alimentée en octets
===================================================

Le thread upstream n'écrit jamais directement sur la socket du client:
il dépose les chunks dans une file bornée, vidée par le thread de la
requête Flask. Un client lent ou mort ne bloque donc jamais les autres.
"""

import logging
import queue
import threading
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)

# Marqueur de fin de flux
_END = object()


class ClientSink:
    """Sink d'un client abonné à une caméra"""

    def __init__(self, client_id: str, max_queue_chunks: int = 256):
        self.client_id = client_id
        self._queue = queue.Queue(maxsize=max_queue_chunks)
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._headers_sent = False
        self._closed = False

        self.status_code: Optional[int] = None
        self.headers: Optional[Dict[str, str]] = None
        self.error_message: Optional[str] = None

    def __repr__(self):
        return f"<ClientSink {self.client_id}>"

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def writable(self) -> bool:
        return self._headers_sent and not self._closed

    def send_headers(self, headers: Dict[str, str]) -> bool:
        """
        Envoyer 200 + headers (idempotent)

        Returns:
            True uniquement pour la première écriture
        """
        with self._lock:
            if self._headers_sent or self._closed:
                return False
            self._headers_sent = True
            self.status_code = 200
            self.headers = dict(headers)
        self._ready.set()
        return True

    def write(self, chunk: bytes) -> bool:
        """Déposer un chunk sans bloquer. False si le client ne suit plus."""
        if not self.writable:
            return False
        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            logger.warning(f"[STREAM] Client {self.client_id} too slow, dropping it")
            return False
        return True

    def fail(self, status_code: int, message: str):
        """
        Réponse terminale

        Avant les headers: le client reçoit status_code + message texte.
        Après les headers: le flux est coupé.
        """
        with self._lock:
            if self._closed:
                return
            if not self._headers_sent:
                self.status_code = status_code
                self.error_message = message
            self._closed = True
        self._finish()

    def close(self):
        """Fermer le sink (idempotent)"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._finish()

    def _finish(self):
        self._ready.set()
        try:
            self._queue.put_nowait(_END)
        except queue.Full:
            # iter_chunks voit _closed au prochain timeout
            pass

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Attendre les headers ou une réponse terminale"""
        return self._ready.wait(timeout)

    def iter_chunks(self, poll_interval: float = 1.0) -> Iterator[bytes]:
        """Chunks dans l'ordre reçu de l'upstream, jusqu'à la fermeture"""
        while True:
            try:
                chunk = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                if self._closed:
                    return
                continue
            if chunk is _END:
                return
            yield chunk
