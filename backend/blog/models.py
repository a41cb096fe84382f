"""
Data Models for Inkwell
=======================

Design Philosophy:
------------------
1. Comments use the Adjacency List pattern (parent_id FK)
   - The stored tree may be arbitrarily deep
   - The read path materialises only three levels (see queries.py)

2. Tags are a separate table joined many-to-many
   - A post's tags behave as a set: no ordering, no duplicates
   - "has every tag" filters become one subquery per tag

3. No denormalized counters for comments
   - comment_count / reply_count are annotated at read time
   - The only stored counter is Post.views, always bumped with F()

4. Identity lives in django.contrib.auth.User
   - Role, activity status and email verification live on Profile
"""

from django.conf import settings
from django.db import models
from django.utils import timezone


class Profile(models.Model):
    """
    Blog-specific identity fields for a user.

    Created by a post_save signal on the user model, so every user has one.
    """

    class Role(models.TextChoices):
        ADMIN = 'ADMIN', 'Admin'
        USER = 'USER', 'User'

    class Status(models.TextChoices):
        ACTIVE = 'ACTIVE', 'Active'
        BLOCKED = 'BLOCKED', 'Blocked'

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile'
    )
    role = models.CharField(
        max_length=10,
        choices=Role.choices,
        default=Role.USER,
        db_index=True  # Stats group authors by role
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    email_verified = models.BooleanField(default=False)

    def __str__(self):
        return f"{self.user.username} ({self.role})"

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN


class Tag(models.Model):
    name = models.CharField(max_length=50, unique=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Post(models.Model):
    """
    A blog post.

    `views` only ever moves through F('views') + 1 so concurrent detail
    fetches never lose an increment.
    """

    class Status(models.TextChoices):
        DRAFT = 'DRAFT', 'Draft'
        PUBLISHED = 'PUBLISHED', 'Published'
        ARCHIVED = 'ARCHIVED', 'Archived'

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='posts',
        db_index=True
    )
    title = models.CharField(max_length=300)
    content = models.TextField()
    thumbnail = models.URLField(max_length=500, blank=True, default='')
    tags = models.ManyToManyField(Tag, related_name='posts', blank=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PUBLISHED
    )
    is_featured = models.BooleanField(default=False, db_index=True)
    views = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['status', '-created_at'], name='blog_post_status_created_idx'),
            models.Index(fields=['author', '-created_at'], name='blog_post_author_created_idx'),
        ]

    def __str__(self):
        return f"{self.title[:50]} by {self.author.username}"


class Comment(models.Model):
    """
    Threaded comment using the Adjacency List pattern.

    Invariant: parent.post_id == post_id. Enforced in services.create_comment,
    and parent/post are never rewritten afterwards.
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        APPROVED = 'APPROVED', 'Approved'
        REJECTED = 'REJECTED', 'Rejected'

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='comments',
        db_index=True
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies',
        db_index=True
    )
    content = models.TextField()
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            # Fetch all comments for a post, ordered
            models.Index(fields=['post', 'created_at'], name='blog_comment_post_idx'),
            # Replies to a specific comment
            models.Index(fields=['parent', 'created_at'], name='blog_comment_parent_idx'),
        ]

    def __str__(self):
        return f"Comment by {self.author.username} on {self.post_id}"


# ============================================================================
# THREAD CONSTANTS
# ============================================================================
# Depth rendered by the post detail endpoint. Storage depth is unbounded.
MAX_THREAD_DEPTH = 3
