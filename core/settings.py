import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from the data directory if one exists
DATA_DIR = Path(os.environ.get("DATA_DIR", BASE_DIR / "data"))

env_file = DATA_DIR / ".env"
if env_file.exists():
    load_dotenv(env_file)

SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "django-insecure-dev-key-change-me-in-production",
)

DEBUG = os.environ.get("DEBUG", "True").lower() in ("true", "1", "yes")

ALLOWED_HOSTS = [
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "testserver",
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "insights",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "core.urls"

WSGI_APPLICATION = "core.wsgi.application"

# Nothing is persisted: uploaded datasets live in the session only.
DATABASES = {}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "keyword-insights",
    }
}

SESSION_ENGINE = "django.contrib.sessions.backends.cache"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Uploads are parsed in memory; the form enforces the size cap.
INSIGHTS_MAX_UPLOAD_SIZE = int(os.environ.get("INSIGHTS_MAX_UPLOAD_MB", "5")) * 1024 * 1024
FILE_UPLOAD_MAX_MEMORY_SIZE = INSIGHTS_MAX_UPLOAD_SIZE

INSIGHTS_PROJECTION_HORIZONS = (3, 6, 9, 12)
INSIGHTS_GROWTH_TIMEFRAMES = (1, 3, 6, 12)

# Remote metadata generation service (unset: use the built-in templates)
METADATA_SERVICE_URL = os.environ.get("METADATA_SERVICE_URL", "")
METADATA_SERVICE_TIMEOUT = float(os.environ.get("METADATA_SERVICE_TIMEOUT", "30"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "insights": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
}
