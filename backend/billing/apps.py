from django.apps import AppConfig
from django.core.signals import setting_changed


class BillingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'billing'

    def ready(self):
        from .services.catalog import reset_catalog_cache

        # Overridden billing settings (tests) must not see a stale catalog
        setting_changed.connect(reset_catalog_cache, dispatch_uid="billing.catalog.reset")
