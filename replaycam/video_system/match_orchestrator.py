"""
Match Orchestrator - Fenêtre d'enregistrement d'un match
========================================================

WAITING --MATCH_START--> RECORDING --(timer | MATCH_ABORT)--> WAITING

- Un seul match à la fois: un déclenchement (manuel ou audio) pendant
  RECORDING est ignoré
- Un enregistrement par caméra configurée
- Le numéro de match est incrémenté et persisté à chaque fin de match
"""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .match_state import MatchStateStore
from .recording import RecordingManager

logger = logging.getLogger(__name__)


class GameState(str, Enum):
    WAITING = 'WAITING'
    RECORDING = 'RECORDING'


class MatchEvent(str, Enum):
    MATCH_START = 'MATCH_START'
    MATCH_ABORT = 'MATCH_ABORT'


class MatchOrchestrator:
    """Machine à états des matchs"""

    def __init__(
        self,
        recording_manager: RecordingManager,
        camera_keys: List[str],
        state_store: MatchStateStore,
        match_duration: float = 155.0,
        timer_factory: Callable = threading.Timer
    ):
        self.recording_manager = recording_manager
        self.camera_keys = list(camera_keys)
        self.state_store = state_store
        self.match_duration = match_duration
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self.match_state = state_store.load()
        self.game_state = GameState.WAITING
        self.match_start_time: Optional[float] = None
        self.started_by: Optional[str] = None
        self.ended_by = 'timer'
        self._stop_timer = None
        self._timer_token = 0

    @property
    def current_match_number(self) -> int:
        return self.match_state.current_match_number

    def handle_event(self, event_type: str, match_number: Optional[int] = None,
                     match_type: Optional[str] = None, is_manual: bool = False) -> dict:
        """
        Appliquer un événement externe

        Raises:
            ValueError: type d'événement inconnu
        """
        try:
            event = MatchEvent(event_type)
        except ValueError:
            raise ValueError(f"Unknown event type: {event_type!r}")

        if event == MatchEvent.MATCH_START:
            self.start_match(match_number=match_number, match_type=match_type, is_manual=is_manual)
        else:
            self.abort_match(is_manual=is_manual)
        return self.snapshot()

    def start_match(self, match_number: Optional[int] = None,
                    match_type: Optional[str] = None, is_manual: bool = False) -> bool:
        """
        Démarrer un match

        Returns:
            False si un match est déjà en cours (aucun changement)
        """
        with self._lock:
            if self.game_state == GameState.RECORDING:
                logger.info(f"[EVENT] Match start ignored: match {self.current_match_number} already recording")
                return False

            self._cancel_timer()
            if match_number is not None:
                self.match_state.current_match_number = max(int(match_number), 1)
            if match_type:
                self.match_state.match_type = match_type

            number = self.match_state.current_match_number
            kind = self.match_state.match_type
            logger.info(f"[EVENT] Match {number} start triggered {'(Manual)' if is_manual else '(Audio Detection)'}.")

            self.game_state = GameState.RECORDING
            self.match_start_time = time.time()
            self.started_by = 'manual' if is_manual else 'audio'
            self.ended_by = 'timer'

            for camera_key in self.camera_keys:
                self.recording_manager.start_recording(camera_key, number, kind)

            self._timer_token += 1
            self._stop_timer = self._timer_factory(self.match_duration, self._on_timer, args=(self._timer_token,))
            self._stop_timer.daemon = True
            self._stop_timer.start()
            return True

    def _on_timer(self, token: int):
        with self._lock:
            if token != self._timer_token or self.game_state != GameState.RECORDING:
                return
            logger.info(f"[EVENT] Match {self.current_match_number} timer finished. Stopping recordings.")
            self._stop_timer = None
            self.ended_by = 'timer'
            self._finish_match()

    def abort_match(self, is_manual: bool = False):
        """Interrompre le match en cours (no-op sur le compteur si rien n'a démarré)"""
        with self._lock:
            logger.info(f"[EVENT] Match {self.current_match_number} abort triggered {'(Manual)' if is_manual else '(System)'}.")
            self._cancel_timer()
            self.ended_by = 'manual' if is_manual else 'system'
            self._finish_match()

    def _finish_match(self):
        # Appelé sous self._lock
        self.recording_manager.stop_all()
        self.game_state = GameState.WAITING
        if self.match_start_time is not None:
            self.match_state.current_match_number += 1
            self.state_store.save(self.match_state)
            self.match_start_time = None

    def _cancel_timer(self):
        self._timer_token += 1
        if self._stop_timer is not None:
            self._stop_timer.cancel()
            self._stop_timer = None

    def snapshot(self) -> dict:
        with self._lock:
            remaining = None
            if self.game_state == GameState.RECORDING and self.match_start_time is not None:
                remaining = max(0.0, self.match_duration - (time.time() - self.match_start_time))
            return {
                'gameState': self.game_state.value,
                'currentMatchNumber': self.match_state.current_match_number,
                'matchType': self.match_state.match_type,
                'isRecording': self.game_state == GameState.RECORDING,
                'matchEndedBy': self.ended_by,
                'startedBy': self.started_by,
                'matchStartTime': datetime.fromtimestamp(self.match_start_time).isoformat() if self.match_start_time else None,
                'remainingSeconds': round(remaining, 1) if remaining is not None else None,
                'activeRecordings': self.recording_manager.active_recordings()
            }

    def shutdown(self):
        """Arrêt serveur: timer annulé, encodeurs arrêtés, état sauvegardé"""
        with self._lock:
            self._cancel_timer()
            self.recording_manager.stop_all()
            self.game_state = GameState.WAITING
            self.state_store.save(self.match_state)
