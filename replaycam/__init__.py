"""
ReplayCam - Proxy live et enregistrement des matchs
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version('replaycam')
except PackageNotFoundError:
    __version__ = '0.0.0'
