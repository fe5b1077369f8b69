# backend/wsgi.py
from spbu import create_app

app = create_app()
