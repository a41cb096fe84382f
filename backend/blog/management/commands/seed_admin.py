"""
Management command to create the site administrator.

Usage: python manage.py seed_admin [--name admin] [--email a@b.c] [--password ...]

Defaults come from APP_ADMIN, APP_ADMIN_EMAIL and APP_ADMIN_PASS.
"""

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from blog.models import Profile

User = get_user_model()


class Command(BaseCommand):
    help = 'Create a verified ADMIN user from APP_ADMIN* settings'

    def add_arguments(self, parser):
        parser.add_argument('--name', default=settings.APP_ADMIN)
        parser.add_argument('--email', default=settings.APP_ADMIN_EMAIL)
        parser.add_argument('--password', default=settings.APP_ADMIN_PASS)

    def handle(self, *args, **options):
        name = options['name']
        email = options['email']
        password = options['password']

        if not email or not password:
            raise CommandError('APP_ADMIN_EMAIL and APP_ADMIN_PASS must be set.')

        if User.objects.filter(email__iexact=email).exists():
            raise CommandError('Admin user already exists!')

        with transaction.atomic():
            user = User.objects.create_user(
                username=name,
                email=email,
                password=password,
                is_staff=True,
            )
            # The post_save signal already created a plain USER profile
            Profile.objects.filter(user=user).update(
                role=Profile.Role.ADMIN,
                email_verified=True,
            )

        self.stdout.write(self.style.SUCCESS(
            f'Admin user created successfully: {user.username} <{user.email}>'
        ))
