"""
Routes Recording - Enregistrements FFmpeg et fichiers produits
==============================================================

Endpoints pour:
- Démarrer / arrêter l'enregistrement d'une caméra hors match
- Lister les enregistrements actifs
- Lister les fichiers .mp4 et leurs métadonnées
"""

import logging
from datetime import datetime
from pathlib import Path

from flask import Blueprint, jsonify, request

from ..video_system import CameraNotFound
from . import get_video_system

logger = logging.getLogger(__name__)

recording_bp = Blueprint('recording', __name__, url_prefix='/api')


@recording_bp.route('/recording/<camera_key>/start', methods=['POST'])
def start_recording(camera_key):
    """Démarrer un enregistrement (numéro/type du match courant par défaut)"""
    system = get_video_system()
    payload = request.get_json(silent=True) or {}
    state = system.orchestrator.match_state

    try:
        match_number = int(payload.get('matchNumber') or state.current_match_number)
    except (TypeError, ValueError):
        return jsonify({'error': 'Invalid matchNumber'}), 400

    try:
        recording = system.recording_manager.start_recording(
            camera_key,
            match_number,
            payload.get('matchType') or state.match_type
        )
    except CameraNotFound as e:
        return jsonify({'error': str(e)}), 404

    if recording is None:
        if system.recording_manager.is_recording(camera_key):
            return jsonify({'error': f"Recording already active for {camera_key}"}), 409
        return jsonify({'error': f"FFmpeg failed to start for {camera_key}"}), 500

    return jsonify({'success': True, 'recording': recording.to_dict()})


@recording_bp.route('/recording/<camera_key>/stop', methods=['POST'])
def stop_recording(camera_key):
    system = get_video_system()
    if camera_key not in system.cameras:
        return jsonify({'error': f"Camera not found: {camera_key}"}), 404

    if not system.recording_manager.stop_recording(camera_key):
        return jsonify({'error': f"No active recording for {camera_key}"}), 404
    return jsonify({'success': True, 'camera': camera_key})


@recording_bp.route('/recording/active', methods=['GET'])
def active_recordings():
    manager = get_video_system().recording_manager
    return jsonify({
        'recordings': manager.active_recordings(),
        'stopping': manager.stopping_count()
    })


@recording_bp.route('/recordings', methods=['GET'])
def list_recordings():
    """Fichiers .mp4, plus récents en premier (tri inverse du nom)"""
    recordings_dir = get_video_system().recording_manager.recordings_dir
    try:
        videos = sorted(
            (p.name for p in recordings_dir.iterdir() if p.is_file() and p.suffix == '.mp4'),
            reverse=True
        )
    except OSError as e:
        logger.error(f"Could not read recordings directory: {e}", exc_info=True)
        return jsonify({'error': 'Could not read recordings directory.'}), 500
    return jsonify(videos)


@recording_bp.route('/video-info/<path:filename>', methods=['GET'])
def video_info(filename):
    recordings_dir = get_video_system().recording_manager.recordings_dir.resolve()
    file_path = (recordings_dir / filename).resolve()

    # Uniquement les fichiers directement dans le dossier des enregistrements
    if file_path.parent != recordings_dir or Path(filename).name != filename:
        return jsonify({'error': 'Invalid filename'}), 400

    try:
        stats = file_path.stat()
    except OSError:
        return jsonify({'error': 'File not found'}), 404

    created = getattr(stats, 'st_birthtime', stats.st_ctime)
    return jsonify({
        'filename': filename,
        'size': stats.st_size,
        'created': datetime.fromtimestamp(created).isoformat(),
        'modified': datetime.fromtimestamp(stats.st_mtime).isoformat()
    })
