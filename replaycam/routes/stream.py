"""
Routes Stream - Proxy live des caméras
======================================

Usage:
    <video src="/stream?camera=field1" />

Tous les clients d'une même caméra partagent une seule connexion upstream.
"""

import logging
import uuid

from flask import Blueprint, Response, current_app, request

from ..video_system import CameraNotFound
from . import get_video_system

logger = logging.getLogger(__name__)

stream_bp = Blueprint('stream', __name__)

# Marge au-delà des timeouts upstream avant d'abandonner l'attente des headers
READY_MARGIN_SECONDS = 5


def _text_response(message: str, status: int) -> Response:
    return Response(message, status=status, mimetype='text/plain')


@stream_bp.route('/stream', methods=['GET'])
def proxy_camera_stream():
    """Flux vidéo d'une caméra (MJPEG/FLV relayé tel quel)"""
    camera_key = request.args.get('camera', '')
    client_id = f"{request.remote_addr}-{uuid.uuid4().hex[:8]}"
    system = get_video_system()

    try:
        sink = system.stream_manager.proxy_stream(client_id, camera_key)
    except CameraNotFound:
        return _text_response('Camera not found', 404)

    timeout = (
        float(current_app.config.get('UPSTREAM_CONNECT_TIMEOUT', 15))
        + float(current_app.config.get('UPSTREAM_READ_TIMEOUT', 30))
        + READY_MARGIN_SECONDS
    )
    if not sink.wait_ready(timeout):
        logger.warning(f"[STREAM] Client {client_id} gave up waiting for {camera_key}")
        system.stream_manager.unsubscribe(camera_key, sink)
        return _text_response('Camera connection timed out', 504)

    if sink.status_code != 200:
        system.stream_manager.unsubscribe(camera_key, sink)
        return _text_response(sink.error_message or 'Stream unavailable', sink.status_code or 503)

    def generate():
        try:
            for chunk in sink.iter_chunks():
                yield chunk
        finally:
            # Fermeture de la réponse (fin normale ou client déconnecté)
            system.stream_manager.unsubscribe(camera_key, sink)

    headers = dict(sink.headers or {})
    content_type = headers.pop('Content-Type', None)
    headers['Cache-Control'] = 'no-cache'
    return Response(generate(), status=200, headers=headers, content_type=content_type)
