"""
Service de logging
Console + fichier journalier, format commun à tous les modules
"""
import logging
import os
from datetime import datetime
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
ROOT_LOGGER = 'replaycam'


def setup_logging(level: str = 'INFO', log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configurer le logger de l'application

    Args:
        level: Niveau minimal (nom ou valeur)
        log_dir: Dossier du fichier journalier (None = console uniquement)

    Returns:
        Le logger racine de l'application
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level if isinstance(level, int) else str(level).upper())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Éviter les doublons (create_app peut être appelé plusieurs fois)
    if not any(getattr(h, '_replaycam', False) for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler._replaycam = True
        logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"replaycam_{datetime.now().strftime('%Y%m%d')}.log")
        known = {getattr(h, 'baseFilename', None) for h in logger.handlers}
        if os.path.abspath(log_file) not in known:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            file_handler._replaycam = True
            logger.addHandler(file_handler)

    return logger
