"""
Management command to seed the database with sample data.

Usage: python manage.py seed_data [--users 10] [--posts 20] [--comments 100] [--clear]
"""

import random
from datetime import timedelta
from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.utils import timezone

from blog.models import Post, Comment, Profile
from blog.services import resolve_tags

User = get_user_model()

TAG_POOL = ['python', 'django', 'postgres', 'devops', 'career', 'testing', 'api', 'frontend']


class Command(BaseCommand):
    help = 'Seed the database with sample data for testing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=10,
            help='Number of users to create'
        )
        parser.add_argument(
            '--posts',
            type=int,
            default=20,
            help='Number of posts to create'
        )
        parser.add_argument(
            '--comments',
            type=int,
            default=100,
            help='Number of comments to create'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding'
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            Comment.objects.all().delete()
            Post.objects.all().delete()
            User.objects.filter(is_superuser=False, profile__role=Profile.Role.USER).delete()

        self.stdout.write('Creating users...')
        users = self._create_users(options['users'])

        self.stdout.write('Creating posts...')
        posts = self._create_posts(users, options['posts'])

        self.stdout.write('Creating comments...')
        comments = self._create_comments(users, posts, options['comments'])

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users\n'
            f'  - {len(posts)} posts\n'
            f'  - {len(comments)} comments'
        ))

    def _create_users(self, count):
        users = []
        for i in range(count):
            username = f'user{i+1}'
            user = User.objects.filter(username=username).first()
            if user is None:
                user = User.objects.create_user(
                    username=username,
                    email=f'{username}@example.com',
                    password='password123'
                )
                Profile.objects.filter(user=user).update(email_verified=True)
            users.append(user)
        return users

    def _create_posts(self, users, count):
        posts = []
        titles = [
            "Getting started with",
            "Lessons learned from",
            "A practical guide to",
            "Why I switched to",
            "Five mistakes to avoid in",
            "Deep dive:",
            "Notes on",
            "The case against",
        ]

        contents = [
            "Lorem ipsum dolor sit amet, consectetur adipiscing elit. Sed do eiusmod tempor incididunt ut labore et dolore magna aliqua.",
            "I've been working on this for a while and wanted to write down what I found.",
            "Here is the setup, the trade-offs, and what I would do differently next time.",
            "A short write-up with code samples and links to further reading.",
        ]

        statuses = [Post.Status.PUBLISHED] * 6 + [Post.Status.DRAFT, Post.Status.ARCHIVED]

        for i in range(count):
            tags = random.sample(TAG_POOL, k=random.randint(1, 3))
            post = Post.objects.create(
                author=random.choice(users),
                title=f"{random.choice(titles)} {tags[0]} #{i+1}",
                content=random.choice(contents) + f"\n\nPost #{i+1}",
                status=random.choice(statuses),
                is_featured=random.random() < 0.15,
                views=random.randint(0, 500),
                created_at=timezone.now() - timedelta(hours=random.randint(0, 240))
            )
            post.tags.set(resolve_tags(tags))
            posts.append(post)
        return posts

    def _create_comments(self, users, posts, count):
        comments = []
        comment_texts = [
            "Great write-up, thanks!",
            "Hmm, I'm not sure about this...",
            "Could you share the config you used?",
            "This matches my experience.",
            "I have a different perspective on this.",
            "Interesting take, but have you considered...",
            "Bookmarked.",
            "+1 to this",
        ]
        statuses = [Comment.Status.APPROVED] * 3 + [Comment.Status.PENDING, Comment.Status.REJECTED]

        for i in range(count):
            post = random.choice(posts)

            # 40% chance of being a reply to an existing comment on the same post
            parent = None
            existing_comments = [c for c in comments if c.post_id == post.id]
            if existing_comments and random.random() < 0.4:
                parent = random.choice(existing_comments)

            comment = Comment.objects.create(
                post=post,
                author=random.choice(users),
                parent=parent,
                content=random.choice(comment_texts),
                status=random.choice(statuses),
                created_at=timezone.now() - timedelta(hours=random.randint(0, 24))
            )
            comments.append(comment)

        return comments
