"""
Erreurs du système vidéo
========================

Chaque erreur porte le code HTTP renvoyé au client qui la subit.
Les erreurs upstream et process sont contenues au niveau du composant:
elles ne font jamais tomber le serveur.
"""


class ReplayCamError(Exception):
    """Erreur de base du système vidéo"""

    status_code = 500


class CameraNotFound(ReplayCamError):
    """Clé caméra inconnue (pas de retry)"""

    status_code = 404

    def __init__(self, camera_key):
        super().__init__(f"Camera not found: {camera_key}")
        self.camera_key = camera_key


class CameraConfigError(ReplayCamError):
    """Fichier de configuration caméra illisible ou invalide"""


class UpstreamError(ReplayCamError):
    """Échec côté caméra"""

    status_code = 502


class UpstreamConnectFailure(UpstreamError):
    """Échec avant réception des headers (réseau, statut, timeout)"""


class UpstreamTimeout(UpstreamConnectFailure):
    """La caméra n'a pas répondu dans le délai de connexion"""

    status_code = 504


class UpstreamStatusError(UpstreamConnectFailure):
    """La caméra a répondu avec un statut différent de 200"""

    def __init__(self, upstream_status: int):
        super().__init__(f"Camera returned status {upstream_status}")
        self.upstream_status = upstream_status


class UpstreamMidStreamFailure(UpstreamError):
    """Erreur de lecture après CONNECTED"""


class ProcessSpawnFailure(ReplayCamError):
    """L'encodeur n'a pas pu être lancé"""
