"""
Fichier principal de l'application ReplayCam
Factory pattern pour créer l'instance Flask
"""
import atexit
import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS

from .config import config
from .routes.cameras import cameras_bp
from .routes.health import health_bp
from .routes.match import match_bp
from .routes.recording import recording_bp
from .routes.settings import settings_bp
from .routes.stream import stream_bp
from .services.json_store import JsonStore
from .services.logging_service import setup_logging
from .video_system import VideoSystem

logger = logging.getLogger(__name__)


def create_app(config_name=None, cameras=None, connector_factory=None, popen=None):
    """
    Factory pour créer l'application Flask

    Args:
        config_name (str): 'development', 'production' ou 'testing'
                           Par défaut, FLASK_ENV ou 'development'
        cameras (dict): Caméras déjà chargées (sinon lues depuis CAMERA_CONFIG_PATH)
        connector_factory: Fabrique de connecteurs upstream (tests)
        popen: Remplaçant de subprocess.Popen (tests)

    Returns:
        Flask: Instance de l'application configurée
    """
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    setup_logging(app.config['LOG_LEVEL'], app.config.get('LOG_DIR'))

    if config_name == 'production' and cameras is None:
        config[config_name].validate()

    # CORS ouvert: l'interface est servie depuis n'importe quel poste du réseau local
    CORS(app,
         origins=app.config['CORS_ORIGINS'],
         send_wildcard=True,
         allow_headers=['Content-Type'],
         methods=['GET', 'POST', 'DELETE', 'OPTIONS'])

    video_system = VideoSystem.from_config(
        app.config,
        cameras=cameras,
        connector_factory=connector_factory,
        popen=popen
    )
    app.extensions['video_system'] = video_system
    app.extensions['replaycam_stores'] = {
        'threshold': JsonStore(app.config['THRESHOLD_PATH']),
        'fingerprints': JsonStore(app.config['FINGERPRINTS_PATH'])
    }

    # Enregistrement des blueprints
    app.register_blueprint(stream_bp)
    app.register_blueprint(cameras_bp)
    app.register_blueprint(match_bp)
    app.register_blueprint(recording_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(health_bp)

    @app.route('/')
    def index():
        """Page d'accueil de l'API"""
        return jsonify({
            'message': 'ReplayCam API',
            'endpoints': {
                'stream': '/stream?camera=<key>',
                'cameras': '/api/cameras',
                'streams': '/api/streams',
                'match_event': '/api/match-event',
                'match_state': '/api/match-state',
                'recordings': '/api/recordings',
                'health': '/api/health'
            }
        })

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'API endpoint not found.'}), 404

    if not app.config.get('TESTING'):
        atexit.register(video_system.shutdown)

    logger.info(f"✅ ReplayCam ready ({config_name}, {len(video_system.cameras)} camera(s))")
    return app
