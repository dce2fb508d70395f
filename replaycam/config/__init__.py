# replaycam/config/__init__.py

import os


def _env_float(name, default):
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return float(default)


class Config:
    """Configuration de base."""
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')

    # Fichiers
    CAMERA_CONFIG_PATH = os.environ.get('CAMERA_CONFIG_PATH', 'config.json')
    MATCH_STATE_PATH = os.environ.get('MATCH_STATE_PATH', 'match_state.json')
    THRESHOLD_PATH = os.environ.get('THRESHOLD_PATH', 'threshold.json')
    FINGERPRINTS_PATH = os.environ.get('FINGERPRINTS_PATH', 'fingerprints.json')
    RECORDINGS_DIR = os.environ.get('RECORDINGS_DIR', 'recordings')

    # Matchs
    MATCH_DURATION_SECONDS = _env_float('MATCH_DURATION_SECONDS', 155)
    DEFAULT_THRESHOLD = int(_env_float('DEFAULT_THRESHOLD', 20))

    # Proxy caméra
    UPSTREAM_CONNECT_TIMEOUT = _env_float('UPSTREAM_CONNECT_TIMEOUT', 15)
    UPSTREAM_READ_TIMEOUT = _env_float('UPSTREAM_READ_TIMEOUT', 30)
    STREAM_IDLE_TIMEOUT = _env_float('STREAM_IDLE_TIMEOUT', 0)  # 0 = fermeture immédiate
    CLIENT_QUEUE_CHUNKS = int(_env_float('CLIENT_QUEUE_CHUNKS', 256))

    # FFmpeg
    FFMPEG_PATH = os.environ.get('FFMPEG_PATH', 'ffmpeg')
    RECORDING_STOP_GRACE_SECONDS = _env_float('RECORDING_STOP_GRACE_SECONDS', 5)

    # Logs
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    @staticmethod
    def validate():
        """Valide que les fichiers critiques existent."""
        path = os.environ.get('CAMERA_CONFIG_PATH', Config.CAMERA_CONFIG_PATH)
        if not os.path.exists(path):
            raise ValueError(f"Fichier de configuration caméra introuvable: {path}")


class DevelopmentConfig(Config):
    """Configuration de développement."""
    DEBUG = True


class ProductionConfig(Config):
    """Configuration de production."""
    DEBUG = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'WARNING')


class TestingConfig(Config):
    """Configuration de test."""
    TESTING = True
    DEBUG = False
    LOG_DIR = None
    STREAM_IDLE_TIMEOUT = 0
    UPSTREAM_CONNECT_TIMEOUT = 2
    UPSTREAM_READ_TIMEOUT = 2
    RECORDING_STOP_GRACE_SECONDS = 0.5


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
