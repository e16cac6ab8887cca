# backend/wsgi.py
from pawnops import create_app

app = create_app()
