"""
asgi.py -- ASGI entry point for NexusAuth.

The only place (with main.py) that reads configuration from the environment.
api/main.py builds the app from whatever Settings it is handed.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
