"""
asgi.py -- ASGI entry point for Kairo.

api/main.py owns the application; this module is the stable import path for
servers so deployment config never names an internal package.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
