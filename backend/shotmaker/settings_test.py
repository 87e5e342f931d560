"""Settings used by the pytest suite."""
from .settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test.sqlite3",  # noqa: F405
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

STRIPE_SECRET_KEY = "sk_test_shotmaker"
STRIPE_WEBHOOK_SECRET = "whsec_shotmaker"
BILLING_PUBLIC_BASE_URL = "http://testserver"

BILLING_PLANS["starter"]["price_id"] = "price_starter_test"  # noqa: F405
BILLING_PLANS["pro"]["price_id"] = "price_pro_test"  # noqa: F405
BILLING_CREDIT_PACKS["credits-500"]["price_id"] = "price_credits_500_test"  # noqa: F405
BILLING_CREDIT_PACKS["credits-1500"]["price_id"] = "price_credits_1500_test"  # noqa: F405
BILLING_CREDIT_PACKS["credits-3500"]["price_id"] = "price_credits_3500_test"  # noqa: F405
