"""
Video System Configuration
===========================

Configuration des caméras (lecture seule, chargée une fois au démarrage)
et résolution de l'encodeur FFmpeg.

Formats acceptés (JSON ou YAML):

    {"cameras": {"field1": {"name": "Field 1", "ip": "10.0.0.5",
                            "port": 8080, "path": "/video"}}}
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import yaml

from .errors import CameraConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraConfig:
    """Connexion d'une caméra réseau"""
    key: str
    name: str
    ip: str
    port: int
    path: str = "/"

    @property
    def url(self) -> str:
        return f"http://{self.ip}:{self.port}{self.path}"

    def to_dict(self) -> dict:
        """Forme attendue par l'interface (clés d'origine)"""
        return {
            'name': self.name,
            'ip': self.ip,
            'port': self.port,
            'path': self.path
        }

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "CameraConfig":
        ip = data.get('ip') or data.get('host')
        if not ip:
            raise CameraConfigError(f"Camera '{key}' has no ip/host")

        try:
            port = int(data.get('port', 80))
        except (TypeError, ValueError):
            raise CameraConfigError(f"Camera '{key}' has an invalid port: {data.get('port')!r}")

        path = data.get('path') or data.get('urlPath') or '/'
        if not path.startswith('/'):
            path = '/' + path

        return cls(
            key=key,
            name=data.get('name') or data.get('displayName') or key,
            ip=ip,
            port=port,
            path=path
        )


def load_camera_config(config_path) -> Dict[str, CameraConfig]:
    """
    Charger la configuration caméra

    Args:
        config_path: Fichier .json, .yaml ou .yml

    Returns:
        Dictionnaire clé caméra -> CameraConfig

    Raises:
        CameraConfigError: fichier absent ou invalide
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise CameraConfigError(f"Config not found: {config_path}")

    logger.info(f"📂 Loading camera config from {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() in ('.yaml', '.yml'):
                cfg = yaml.safe_load(f)
            else:
                cfg = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise CameraConfigError(f"Could not read or parse {config_path}: {e}") from e

    if not isinstance(cfg, dict):
        raise CameraConfigError(f"Invalid camera config in {config_path}")

    entries = cfg.get('cameras', cfg)
    if not isinstance(entries, dict):
        raise CameraConfigError(f"'cameras' must be a mapping in {config_path}")

    cameras = {}
    for key, data in entries.items():
        if not isinstance(data, dict):
            raise CameraConfigError(f"Camera '{key}' must be a mapping")
        cameras[str(key)] = CameraConfig.from_dict(str(key), data)

    logger.info(f"📡 Camera configuration loaded: {list(cameras)}")
    return cameras


def resolve_ffmpeg(ffmpeg_path: str = "ffmpeg") -> str:
    """Résoudre le chemin de l'exécutable FFmpeg"""
    if os.path.isabs(ffmpeg_path):
        if not Path(ffmpeg_path).exists():
            raise FileNotFoundError(ffmpeg_path)
        return ffmpeg_path

    resolved = shutil.which(ffmpeg_path)
    if not resolved:
        raise FileNotFoundError(ffmpeg_path)
    return resolved
