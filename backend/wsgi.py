# backend/wsgi.py
from lmis import create_app

app = create_app()
