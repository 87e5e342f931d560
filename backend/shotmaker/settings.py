"""
Django settings for the ShotMaker backend.

Values are read from the environment; a ``.env`` file at the repository root
is loaded first when present.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR.parent / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [host for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if host]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework.authtoken",
    "django_filters",
    "accounts",
    "billing",
    "generation",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "shotmaker.urls"

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

WSGI_APPLICATION = "shotmaker.wsgi.application"
ASGI_APPLICATION = "shotmaker.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRES_DB", "shotmaker"),
        "USER": os.getenv("POSTGRES_USER", "shotmaker"),
        "PASSWORD": os.getenv("POSTGRES_PASSWORD", "shotmaker"),
        "HOST": os.getenv("POSTGRES_HOST", "localhost"),
        "PORT": os.getenv("POSTGRES_PORT", "5432"),
        "ATOMIC_REQUESTS": False,
    }
}

AUTH_USER_MODEL = "accounts.User"

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
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.TokenAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.OrderingFilter",
    ],
    "EXCEPTION_HANDLER": "billing.exception_handler.billing_exception_handler",
}

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER", False)

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_API_VERSION = os.getenv("STRIPE_API_VERSION", "")
BILLING_PUBLIC_BASE_URL = os.getenv("BILLING_PUBLIC_BASE_URL", "http://localhost:3000")

# Credits and catalog
DEFAULT_SIGNUP_CREDITS = int(os.getenv("DEFAULT_SIGNUP_CREDITS", "50"))

BILLING_PLANS = {
    "free": {
        "name": "Free",
        "monthly_credits": 50,
        "price_label": "$0/mo",
        "description": "Ideal for testing a small project.",
        "price_id": "",
    },
    "starter": {
        "name": "Starter",
        "monthly_credits": 200,
        "price_label": "$15/mo",
        "description": "For indie teams shipping small sequences.",
        "price_id": os.getenv("STRIPE_PRICE_STARTER", ""),
    },
    "pro": {
        "name": "Pro",
        "monthly_credits": 600,
        "price_label": "$35/mo",
        "description": "For production pipelines and daily iteration.",
        "price_id": os.getenv("STRIPE_PRICE_PRO", ""),
    },
}

BILLING_CREDIT_PACKS = {
    "credits-500": {"credits": 500, "price_label": "$10", "price_id": os.getenv("STRIPE_PRICE_CREDITS_500", "")},
    "credits-1500": {"credits": 1500, "price_label": "$25", "price_id": os.getenv("STRIPE_PRICE_CREDITS_1500", "")},
    "credits-3500": {"credits": 3500, "price_label": "$50", "price_id": os.getenv("STRIPE_PRICE_CREDITS_3500", "")},
}

CREDIT_COSTS = {
    "style": 15,
    "character": 8,
    "object": 8,
    "set": 5,
    "asset_refinement": 5,
}

BILLING_PAGE_SIZE = int(os.getenv("BILLING_PAGE_SIZE", "20"))
BILLING_MAX_PAGE_SIZE = int(os.getenv("BILLING_MAX_PAGE_SIZE", "100"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "billing": {
            "level": os.getenv("BILLING_LOG_LEVEL", "INFO"),
        },
        "django.db.backends": {
            "level": "WARNING",
        },
    },
}
