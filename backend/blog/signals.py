"""
Django Signals for the identity bridge.

Every user row gets a Profile (role USER, ACTIVE, email unverified) the
moment it is created, so permission checks can always read
request.user.profile.

Superusers created with `createsuperuser` become verified admins: they
bypass the normal sign-up flow that would verify their email.

IMPORTANT: Signals do NOT fire on bulk_create(), so seed code that bulk
inserts users must create profiles itself.
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Profile

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_profile(sender, instance, created, **kwargs):
    if not created:
        return

    defaults = {}
    if instance.is_superuser:
        defaults = {'role': Profile.Role.ADMIN, 'email_verified': True}

    Profile.objects.get_or_create(user=instance, defaults=defaults)
    logger.debug(f"Profile created for user {instance.id}")
