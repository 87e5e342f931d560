from django.db.models.signals import post_save
from django.dispatch import receiver
from .models import User
import logging

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def open_credit_account(sender, instance, created, raw=False, **kwargs):
    """
    Provision the user's credit account (free plan, signup grant) on creation
    """
    if not created or raw:
        return

    from billing.services.credits import get_credit_service

    account = get_credit_service().open_account(instance)
    logger.info(
        "New user created: %s (%s); credit account %s opened with %s credits",
        instance.username,
        instance.email,
        account.id,
        account.credit_balance,
    )
