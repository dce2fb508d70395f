# replaycam/routes/health.py

"""
Health check pour le monitoring externe
"""

import logging

from flask import Blueprint, jsonify

from ..services.monitoring_service import get_system_health
from . import get_video_system

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__, url_prefix='/api')


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    200 si healthy/warning, 503 sinon
    """
    system = get_video_system()
    try:
        health_status = get_system_health(system.recording_manager.recordings_dir)
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return jsonify({'status': 'unhealthy', 'error': str(e)}), 503

    health_status['service'] = 'replaycam'
    health_status['cameras'] = len(system.cameras)
    health_status['gameState'] = system.orchestrator.game_state.value

    status_code = 200 if health_status['status'] in ('healthy', 'warning') else 503
    return jsonify(health_status), status_code
