from django.apps import AppConfig


class AccountConfig(AppConfig):
    """
    Account app configuration
    """
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'accounts'
    verbose_name = 'Account Management'

    def ready(self):
        """
        App ready hook - connects the credit account provisioning signal
        """
        import accounts.signals  # noqa: F401
