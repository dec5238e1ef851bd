"""
Django settings for backend project.

Values that differ between deployments come from the environment. A ``.env``
file at the repository root is loaded first when present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR.parent / ".env")


def _env_list(name, default=""):
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY",
    "django-insecure-gfwlhub-development-key-change-me",
)

DEBUG = _env_bool("DJANGO_DEBUG", False)

ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "users",
    "games",
    "corrections",
    "reviews",
    "notifications",
    "applications",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "backend.middleware.JsonExceptionMiddleware",
]

ROOT_URLCONF = "backend.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "backend.wsgi.application"


DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "gfwlhub",
    }
}

AUTH_USER_MODEL = "users.User"

# Sign-in is refused for provider accounts on the ban list.
AUTHENTICATION_BACKENDS = ["users.backends.ProviderBanBackend"]

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Clients send the anti-forgery token in an X-CSRF-Token header.
CSRF_HEADER_NAME = "HTTP_X_CSRF_TOKEN"
CSRF_FAILURE_VIEW = "backend.views.csrf_failure"


LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "backend": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "users": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "games": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "corrections": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "reviews": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "notifications": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "applications": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}


# ============================================================
# GFWL HUB
# ============================================================

SITE_URL = os.environ.get("SITE_URL", "https://gfwlhub.com").rstrip("/")

# Emails allowed to change admin-level roles.
DEVELOPER_EMAILS = [email.lower() for email in _env_list("DEVELOPER_EMAILS")]

# An empty list disables Discord notifications.
DISCORD_WEBHOOK_URLS = _env_list("DISCORD_WEBHOOK_URL")

CORRECTION_MERGE_WINDOW_MINUTES = 10
CORRECTIONS_LIST_LIMIT = 1000
AUDIT_LOG_LIST_LIMIT = 1000
ACCOUNT_RESTORE_GRACE_DAYS = 30

REVIEWER_APPLICATION = {
    "MIN_CORRECTIONS_SUBMITTED": int(os.environ.get("MIN_CORRECTIONS_SUBMITTED", "20")),
    "MIN_CORRECTIONS_ACCEPTED": int(os.environ.get("MIN_CORRECTIONS_ACCEPTED", "10")),
    "MIN_ACCOUNT_AGE_DAYS": int(os.environ.get("MIN_ACCOUNT_AGE_DAYS", "7")),
    "REAPPLICATION_COOLDOWN_DAYS": int(os.environ.get("REAPPLICATION_COOLDOWN_DAYS", "30")),
    # approved / reviewed, 0..1
    "MIN_APPROVAL_RATE": float(os.environ.get("MIN_APPROVAL_RATE", "0.8")),
}

# Accounts flagged for review in the admin user list.
FRAUD_REJECTION_RATE = 70
FRAUD_MIN_SUBMISSIONS = 10

# scope -> (max requests, window seconds)
RATE_LIMITS = {
    "api": (30, 60),
    "admin": (20, 60),
    "auth": (5, 60),
}

NOTIFICATIONS_ASYNC = _env_bool("NOTIFICATIONS_ASYNC", True)
NOTIFICATION_MAX_ATTEMPTS = 5
NOTIFICATION_RETRY_BASE_SECONDS = 30
NOTIFICATION_HTTP_TIMEOUT = 10
# How long a worker holds a pending event before another may pick it up.
NOTIFICATION_CLAIM_SECONDS = 120
