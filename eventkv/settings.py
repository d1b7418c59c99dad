"""
Django settings for the event-sourced key/value store.

Every setting that differs between deployments is read from the environment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-development-key")

DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "drf_spectacular",
    "eventstore.apps.EventstoreConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "eventkv.urls"

WSGI_APPLICATION = "eventkv.wsgi.application"

# The event document is the only persisted state
DATABASES = {}

# Routes accept an optional trailing slash themselves
APPEND_SLASH = False

USE_TZ = True

# Path of the JSON file holding every key's event history
EVENTSTORE_DATA_FILE = os.environ.get("EVENTSTORE_DATA_FILE", str(BASE_DIR / "data.json"))

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "eventstore.exceptions.plain_text_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Event-sourced key/value store",
    "DESCRIPTION": (
        "Key/value store in which every key keeps an append-only history of "
        "create, update and delete events."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "eventstore": {
            "handlers": ["console"],
            "level": os.environ.get("EVENTSTORE_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
