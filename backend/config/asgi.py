"""
ASGI config for config project.

It exposes the ASGI callable as a module-level variable named ``application``.

Progress is observed by polling the REST API, so plain HTTP is all that is served.
"""

import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_asgi_application()
