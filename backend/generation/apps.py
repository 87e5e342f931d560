from django.apps import AppConfig


class GenerationConfig(AppConfig):
    """
    Django app configuration for credit-metered generation.

    Tracks each generation attempt (style, asset, asset refinement) from the
    credit check through to its terminal status and the ledger entry charged
    for it.
    """

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'generation'
    verbose_name = 'Generation Attempts'
