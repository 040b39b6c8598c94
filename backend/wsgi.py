# backend/wsgi.py
from zentry import create_app

app = create_app()
