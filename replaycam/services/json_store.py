"""
Petit stockage JSON (seuil de détection, empreintes audio)
"""
import json
import logging
import os
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonStore:
    """Document JSON protégé par un verrou, écrit atomiquement"""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read(self, default=None):
        with self._lock:
            if not self.path.exists():
                return default
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Could not read or parse {self.path}: {e}")
                return default

    def write(self, data):
        """Raises OSError si l'écriture échoue"""
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
