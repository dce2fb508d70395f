"""
Blueprints HTTP de ReplayCam
"""
from flask import current_app


def get_video_system():
    """VideoSystem attaché à l'application courante"""
    return current_app.extensions['video_system']


def get_store(name):
    """JsonStore attaché à l'application ('threshold' ou 'fingerprints')"""
    return current_app.extensions['replaycam_stores'][name]
