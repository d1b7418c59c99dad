"""
WSGI config for the event-sourced key/value store.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "eventkv.settings")

application = get_wsgi_application()
