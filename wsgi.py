"""
WSGI entry point for production deployment

    gunicorn --worker-class gthread --threads 32 -w 1 wsgi:application

Un seul worker: le partage d'un upstream par caméra suppose un seul processus.
"""
import os
from pathlib import Path

project_root = Path(__file__).parent.absolute()

# Load environment variables from .env if exists
env_file = project_root / '.env'
if env_file.exists():
    with open(env_file, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ.setdefault(key.strip(), value.strip())

from replaycam.main import create_app  # noqa: E402

env = os.environ.get('FLASK_ENV', 'production')
app = create_app(env)

# This is what Gunicorn will use
application = app

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    app.run(host='0.0.0.0', port=port, threaded=True)
