# replaycam/services/monitoring_service.py

"""
Health checks: disque des enregistrements, mémoire, CPU
"""

import logging
from datetime import datetime
from typing import Any, Dict

import psutil

logger = logging.getLogger(__name__)


def _check_disk_space(path) -> Dict[str, Any]:
    """Vérifie l'espace disque du dossier des enregistrements"""
    try:
        usage = psutil.disk_usage(str(path))
    except OSError as e:
        return {'status': 'error', 'message': f'Failed to check disk space: {e}'}

    status = 'healthy'
    if usage.percent > 95:
        status = 'critical'
    elif usage.percent > 85:
        status = 'warning'

    return {
        'status': status,
        'used_percent': round(usage.percent, 2),
        'free_gb': round(usage.free / (1024 ** 3), 2),
        'total_gb': round(usage.total / (1024 ** 3), 2)
    }


def _check_memory() -> Dict[str, Any]:
    """Vérifie l'utilisation mémoire"""
    memory = psutil.virtual_memory()
    status = 'healthy'
    if memory.percent > 90:
        status = 'critical'
    elif memory.percent > 80:
        status = 'warning'
    return {'status': status, 'used_percent': round(memory.percent, 2)}


def get_system_health(recordings_dir) -> Dict[str, Any]:
    """
    État de santé du serveur

    Le statut global est le pire des statuts individuels.
    """
    checks = {
        'disk_space': _check_disk_space(recordings_dir),
        'memory': _check_memory(),
        'cpu': {'status': 'healthy', 'percent': psutil.cpu_percent(interval=None)}
    }

    order = ['healthy', 'warning', 'critical', 'error']
    overall = max((c['status'] for c in checks.values()), key=order.index)
    if overall != 'healthy':
        logger.warning(f"Health check: {overall} ({checks})")

    return {
        'status': overall,
        'timestamp': datetime.utcnow().isoformat(),
        'checks': checks
    }
