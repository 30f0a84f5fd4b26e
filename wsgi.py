"""
WSGI entry point — `gunicorn wsgi:app` serves the lead API.
"""
from leadpipe import create_app

app = create_app()

if __name__ == '__main__':
    from leadpipe.config import PORT
    app.run(host='0.0.0.0', port=PORT)
