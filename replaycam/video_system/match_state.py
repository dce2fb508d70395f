"""
État persistant des matchs (numéro et type du prochain match)
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MatchState:
    current_match_number: int = 1
    match_type: str = 'match'
    last_update: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'currentMatchNumber': self.current_match_number,
            'matchType': self.match_type,
            'lastUpdate': self.last_update
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MatchState":
        number = int(data.get('currentMatchNumber') or 1)
        return cls(
            current_match_number=max(number, 1),
            match_type=data.get('matchType') or 'match',
            last_update=data.get('lastUpdate')
        )


class MatchStateStore:
    """Lecture au démarrage, écriture aux fins de match"""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> MatchState:
        if not self.path.exists():
            return MatchState()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                state = MatchState.from_dict(json.load(f))
            logger.info(f"Loaded match state: Next match will be #{state.current_match_number}")
            return state
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Could not read match state, starting from match 1: {e}")
            return MatchState()

    def save(self, state: MatchState) -> bool:
        state.last_update = datetime.now().isoformat()
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    json.dump(state.to_dict(), f)
                os.replace(tmp_path, self.path)
            except OSError as e:
                logger.error(f"Failed to save match state: {e}")
                return False
        return True
