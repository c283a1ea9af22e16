# backend/wsgi.py
# Entry point for `flask` (FLASK_APP=wsgi.py) and WSGI servers.
from storefront import create_app

app = create_app()
