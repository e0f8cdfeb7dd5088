# backend/wsgi.py
from buspos import create_app

app = create_app()
