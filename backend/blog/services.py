"""
Write Services: posts, comments, moderation
===========================================

Every function here takes already-validated data (see serializers.py) plus
the requesting user, and raises a BlogError subclass on failure. None of
them touch HTTP.

AUTHORIZATION:
--------------
Update/delete go through permissions.can_mutate: the resource author or an
admin. For posts, a non-admin's is_featured is silently dropped instead of
rejected; the rest of the write proceeds.

TRANSACTION STRATEGY:
--------------------
Multi-row writes (a post and its tag links, a batch of posts) run inside
transaction.atomic() so a failure leaves nothing behind.
"""

import logging
from typing import Iterable

from django.db import transaction

from .exceptions import InvalidRequest, NotFoundError, ForbiddenError
from .models import Post, Comment, Tag
from .permissions import Role, can_mutate, get_profile

logger = logging.getLogger(__name__)


def _requester_role(user):
    return get_profile(user).role


def _is_admin(user) -> bool:
    return get_profile(user).is_admin


def resolve_tags(names: Iterable[str]) -> list[Tag]:
    """Get-or-create a Tag row per distinct name, preserving input order."""
    tags = []
    seen = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        tag, _ = Tag.objects.get_or_create(name=name)
        tags.append(tag)
    return tags


# ============================================================================
# POSTS
# ============================================================================

def _create_post(data: dict, author, is_admin: bool) -> Post:
    data = dict(data)
    tag_names = data.pop('tags', [])
    if not is_admin:
        data.pop('is_featured', None)

    post = Post.objects.create(author=author, **data)
    if tag_names:
        post.tags.set(resolve_tags(tag_names))
    return post


def create_post(data: dict, author) -> Post:
    with transaction.atomic():
        post = _create_post(data, author, _is_admin(author))
    logger.info(f"Post {post.id} created by user {author.id}")
    return post


def create_many_posts(payloads: list[dict], author) -> list[Post]:
    """
    Create a batch of posts for one author. All-or-nothing.

    bulk_create() can't attach M2M tags, so posts are created one by one
    inside a single transaction instead.
    """
    if not payloads:
        raise InvalidRequest('No posts provided!')

    is_admin = _is_admin(author)
    with transaction.atomic():
        posts = [_create_post(data, author, is_admin) for data in payloads]

    logger.info(f"{len(posts)} posts created by user {author.id}")
    return posts


def _get_post_for_write(post_id: int) -> Post:
    post = Post.objects.filter(id=post_id).only('id', 'author_id').first()
    if post is None:
        raise NotFoundError('Post not found!')
    return post


def update_post(post_id: int, data: dict, requester) -> Post:
    """
    Apply a partial update.

    ORDER:
    1. Empty payload -> 400
    2. Missing post -> 404
    3. Non-admin: drop is_featured, then require authorship (403)
    4. Write fields + replace tag set in one transaction
    """
    if not data:
        raise InvalidRequest('No update data provided!')

    post = _get_post_for_write(post_id)
    role = _requester_role(requester)

    data = dict(data)
    if role != Role.ADMIN:
        data.pop('is_featured', None)

    if not can_mutate(post.author_id, requester.id, role):
        logger.warning(f"User {requester.id} denied update on post {post_id}")
        raise ForbiddenError('You are not authorized to update this post!')

    tag_names = data.pop('tags', None)
    with transaction.atomic():
        post = Post.objects.select_for_update().get(id=post_id)
        for name, value in data.items():
            setattr(post, name, value)
        # Always save so updated_at moves, even for a tags-only edit
        post.save(update_fields=[*data, 'updated_at'])
        if tag_names is not None:
            post.tags.set(resolve_tags(tag_names))

    logger.info(f"Post {post_id} updated by user {requester.id}")
    return Post.objects.select_related('author').prefetch_related('tags').get(id=post_id)


def delete_post(post_id: int, requester) -> Post:
    """Delete a post and, by cascade, its comments. Returns the removed post."""
    post = _get_post_for_write(post_id)

    if not can_mutate(post.author_id, requester.id, _requester_role(requester)):
        logger.warning(f"User {requester.id} denied delete on post {post_id}")
        raise ForbiddenError('You are not authorized to delete this post!')

    # Prefetch tags first: the link rows are gone once delete() returns
    post = Post.objects.select_related('author').prefetch_related('tags').get(id=post_id)
    post.delete()
    post.id = post_id
    logger.info(f"Post {post_id} deleted by user {requester.id}")
    return post


# ============================================================================
# COMMENTS
# ============================================================================

def create_comment(author, post_id: int, content: str, parent_id: int = None) -> Comment:
    """
    Create a comment (status PENDING).

    CHECKS, in order:
    1. Post exists                       -> 404
    2. Parent (if any) exists            -> 404
    3. Parent belongs to the same post   -> 400

    Nothing is written unless every check passes.
    """
    if not Post.objects.filter(id=post_id).exists():
        raise NotFoundError('Post not found!')

    parent = None
    if parent_id is not None:
        parent = Comment.objects.filter(id=parent_id).first()
        if parent is None:
            raise NotFoundError('Parent comment not found!')
        if parent.post_id != post_id:
            raise InvalidRequest(
                'Parent comment belongs to a different post!',
                details={'parent_id': parent_id, 'post_id': post_id}
            )

    comment = Comment.objects.create(
        post_id=post_id,
        author=author,
        parent=parent,
        content=content,
    )
    logger.info(f"Comment {comment.id} created on post {post_id} by user {author.id}")
    return comment


def _get_comment_for_write(comment_id: int) -> Comment:
    comment = Comment.objects.filter(id=comment_id).first()
    if comment is None:
        raise NotFoundError('Comment not found!')
    return comment


def update_comment(comment_id: int, data: dict, requester) -> Comment:
    """Edit a comment's content. Status, post and parent are not writable here."""
    if not data:
        raise InvalidRequest('No update data provided!')

    comment = _get_comment_for_write(comment_id)

    if not can_mutate(comment.author_id, requester.id, _requester_role(requester)):
        logger.warning(f"User {requester.id} denied update on comment {comment_id}")
        raise ForbiddenError('You are not authorized to update this comment!')

    comment.content = data['content']
    comment.save(update_fields=['content', 'updated_at'])
    logger.info(f"Comment {comment_id} updated by user {requester.id}")
    return comment


def delete_comment(comment_id: int, requester) -> Comment:
    """Delete a comment. Its replies go with it (FK cascade)."""
    comment = _get_comment_for_write(comment_id)

    if not can_mutate(comment.author_id, requester.id, _requester_role(requester)):
        logger.warning(f"User {requester.id} denied delete on comment {comment_id}")
        raise ForbiddenError('You are not authorized to delete this comment!')

    comment.delete()
    comment.id = comment_id
    logger.info(f"Comment {comment_id} deleted by user {requester.id}")
    return comment


def change_comment_status(comment_id: int, status: str) -> Comment:
    """
    Moderation: set PENDING / APPROVED / REJECTED.

    Admin-only at the route level. Counts are derived at read time, so
    nothing else changes.
    """
    if status not in Comment.Status.values:
        raise InvalidRequest(
            f"Invalid comment status '{status}'",
            details={'status': Comment.Status.values}
        )

    comment = _get_comment_for_write(comment_id)
    comment.status = status
    comment.save(update_fields=['status', 'updated_at'])
    logger.info(f"Comment {comment_id} moved to {status}")
    return comment
