"""
Routes Settings - Seuil de détection et empreintes audio
"""

import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from . import get_store

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__, url_prefix='/api')


@settings_bp.route('/threshold', methods=['GET'])
def get_threshold():
    default = {'threshold': current_app.config.get('DEFAULT_THRESHOLD', 20)}
    return jsonify(get_store('threshold').read(default))


@settings_bp.route('/threshold', methods=['POST'])
def save_threshold():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'JSON object expected'}), 400
    try:
        get_store('threshold').write(payload)
    except OSError as e:
        logger.error(f"Could not save threshold: {e}", exc_info=True)
        return jsonify({'error': 'Could not save threshold'}), 500
    return jsonify({'success': True})


@settings_bp.route('/fingerprints', methods=['GET'])
def list_fingerprints():
    return jsonify(get_store('fingerprints').read({}))


@settings_bp.route('/fingerprints', methods=['POST'])
def save_fingerprint():
    """
    Body JSON:
        name: nom de l'empreinte
        mfcc: coefficients MFCC
        description: texte libre (optionnel)
    """
    payload = request.get_json(silent=True) or {}
    name = payload.get('name')
    mfcc = payload.get('mfcc')
    if not name or not isinstance(mfcc, list):
        return jsonify({'error': 'name and mfcc are required'}), 400

    store = get_store('fingerprints')
    fingerprints = store.read({})
    fingerprints[name] = {
        'mfcc': mfcc,
        'description': payload.get('description'),
        'created': datetime.utcnow().isoformat() + 'Z'
    }
    try:
        store.write(fingerprints)
    except OSError as e:
        logger.error(f"Could not save fingerprint {name}: {e}", exc_info=True)
        return jsonify({'error': 'Could not save fingerprint'}), 500

    logger.info(f"[FINGERPRINT] Saved: {name} ({len(mfcc)} coefficients)")
    return jsonify({'success': True, 'name': name})


@settings_bp.route('/fingerprints/<path:name>', methods=['DELETE'])
def delete_fingerprint(name):
    store = get_store('fingerprints')
    fingerprints = store.read({})
    if name not in fingerprints:
        return jsonify({'error': 'Fingerprint not found'}), 404

    del fingerprints[name]
    try:
        store.write(fingerprints)
    except OSError as e:
        logger.error(f"Could not delete fingerprint {name}: {e}", exc_info=True)
        return jsonify({'error': 'Could not delete fingerprint'}), 500

    logger.info(f"[FINGERPRINT] Deleted: {name}")
    return jsonify({'success': True, 'deleted': name})
