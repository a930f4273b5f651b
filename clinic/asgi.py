"""
ASGI config for the clinic project.

Exposes the ASGI callable as a module-level variable named ``application``
so the service can run under uvicorn/daphne as well as a WSGI server.
"""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "clinic.settings")

application = get_asgi_application()
