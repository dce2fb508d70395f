"""
Point d'entrée du serveur de développement
Lance l'application depuis replaycam.main
"""
import logging
import os
import signal
import sys

from replaycam.main import create_app

env = os.environ.get('FLASK_ENV', 'development')
app = create_app(env)
logger = logging.getLogger('replaycam')


def _shutdown(signum=None, frame=None):
    app.extensions['video_system'].shutdown()
    logger.info('HTTP server closed.')
    sys.exit(0)


if __name__ == '__main__':
    signal.signal(signal.SIGTERM, _shutdown)
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Server running at http://localhost:{port}")
    try:
        # threaded: un thread par client de flux
        app.run(host='0.0.0.0', port=port, threaded=True, use_reloader=False)
    except KeyboardInterrupt:
        _shutdown()
