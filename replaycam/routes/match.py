"""
Routes Match - Événements de match (déclencheur audio ou manuel)
"""

import logging

from flask import Blueprint, jsonify, request

from . import get_video_system

logger = logging.getLogger(__name__)

match_bp = Blueprint('match', __name__, url_prefix='/api')


@match_bp.route('/match-event', methods=['POST'])
def match_event():
    """
    Body JSON:
        eventType: MATCH_START | MATCH_ABORT
        matchNumber: numéro imposé (optionnel)
        matchType: type imposé, ex. "qualification" (optionnel)
        isManual: déclenchement opérateur
    """
    payload = request.get_json(silent=True) or {}
    event_type = payload.get('eventType')

    match_number = payload.get('matchNumber')
    if match_number is not None:
        try:
            match_number = int(match_number)
        except (TypeError, ValueError):
            return jsonify({'error': f"Invalid matchNumber: {match_number!r}"}), 400

    try:
        state = get_video_system().orchestrator.handle_event(
            event_type,
            match_number=match_number,
            match_type=payload.get('matchType'),
            is_manual=bool(payload.get('isManual', False))
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error handling match event {event_type}: {e}", exc_info=True)
        return jsonify({'error': 'Server error processing request'}), 500

    return jsonify({'success': True, **state})


@match_bp.route('/match-state', methods=['GET'])
def match_state():
    return jsonify(get_video_system().orchestrator.snapshot())
