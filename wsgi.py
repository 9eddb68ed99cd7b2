"""
Waitress WSGI entry point for production deployment.

Usage::

    python wsgi.py

Or register as a Windows Service via NSSM::

    nssm install AssetSO "C:\\path\\to\\venv\\Scripts\\python.exe" "C:\\path\\to\\wsgi.py"

The configured default admin account is created, or given back its
ADMIN role, on every start.
"""

import os

from waitress import serve

from app import create_app
from app.services import auth_service

# Force production config when running via this entry point.
app = create_app(os.environ.get("FLASK_ENV", "production"))

if __name__ == "__main__":
    with app.app_context():
        auth_service.ensure_default_admin()

    host = os.environ.get("WAITRESS_HOST", "127.0.0.1")
    port = int(os.environ.get("WAITRESS_PORT", "8080"))
    app.logger.info("Starting Waitress on %s:%s", host, port)
    serve(app, host=host, port=port)
