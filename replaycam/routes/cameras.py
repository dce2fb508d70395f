"""
Routes Caméras - Configuration et état des flux
"""

import logging

from flask import Blueprint, jsonify

from ..video_system import CameraNotFound
from . import get_video_system

logger = logging.getLogger(__name__)

cameras_bp = Blueprint('cameras', __name__, url_prefix='/api')


@cameras_bp.route('/cameras', methods=['GET'])
def list_cameras():
    """Configuration caméra, forme d'origine {clé: {name, ip, port, path}}"""
    cameras = get_video_system().cameras
    logger.info(f"[API] Returning camera config: {list(cameras)}")
    return jsonify({key: camera.to_dict() for key, camera in cameras.items()})


@cameras_bp.route('/streams', methods=['GET'])
def streams_status():
    try:
        return jsonify(get_video_system().stream_manager.status())
    except Exception as e:
        logger.error(f"Error reading stream status: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500


@cameras_bp.route('/streams/<camera_key>/disconnect', methods=['POST'])
def disconnect_stream(camera_key):
    """Fermer l'upstream d'une caméra (les clients reçoivent une fin de flux)"""
    try:
        closed = get_video_system().stream_manager.disconnect(camera_key)
        return jsonify({'success': True, 'camera': camera_key, 'disconnected': closed})
    except CameraNotFound as e:
        return jsonify({'error': str(e)}), 404
    except Exception as e:
        logger.error(f"Error disconnecting {camera_key}: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
