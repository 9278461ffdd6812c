"""Review management service - scope-exact upsert and CRUD for reviews."""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction, IntegrityError
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.groups.services import is_member
from apps.music.models import Song
from apps.reviews.models import Review
from apps.reviews.ratings import validate_rating
from apps.reviews.scopes import Scope
from apps.reviews.exceptions import (
    ReviewNotFoundError,
    SongNotFoundError,
    InvalidContentError,
    ForbiddenScopeError,
    UnauthorizedReviewActionError,
    ReviewConflictError,
)
from .visibility import resolve_scope, visible_reviews_q

logger = logging.getLogger(__name__)


def validate_content(content: Optional[str]) -> Optional[str]:
    """
    Raises:
        InvalidContentError: If content is longer than REVIEW_CONTENT_MAX_LENGTH
    """
    if content is None:
        return None
    if not isinstance(content, str):
        raise InvalidContentError("Review content must be text")
    limit = settings.REVIEW_CONTENT_MAX_LENGTH
    if len(content) > limit:
        raise InvalidContentError(f"Review content must be at most {limit} characters")
    return content


def _find_scoped_review(*, author: User, song_id: UUID, group_id: Optional[UUID]) -> Optional[Review]:
    """Exact-scope lookup: a public review never matches a group submission."""
    queryset = Review.objects.select_for_update().filter(author=author, song_id=song_id)
    if group_id is None:
        queryset = queryset.filter(group__isnull=True)
    else:
        queryset = queryset.filter(group_id=group_id)
    return queryset.first()


@transaction.atomic
def _upsert_once(
    *,
    author: User,
    song_id: UUID,
    group_id: Optional[UUID],
    rating: Decimal,
    content: Optional[str],
) -> tuple[Review, bool]:
    review = _find_scoped_review(author=author, song_id=song_id, group_id=group_id)

    if review is not None:
        review.rating = rating
        update_fields = ['rating', 'updated_at']
        if content is not None:
            review.content = content
            update_fields.append('content')
        review.save(update_fields=update_fields)
        return review, False

    try:
        with transaction.atomic():
            review = Review.objects.create(
                author=author,
                song_id=song_id,
                group_id=group_id,
                rating=rating,
                content=content or '',
            )
    except IntegrityError:
        # Another writer inserted the same key between lookup and insert
        raise ReviewConflictError(
            f"Concurrent submission for song {song_id} in scope {group_id or 'public'}"
        )

    return review, True


def submit_review(
    *,
    author: User,
    song_id: UUID,
    rating,
    content: Optional[str] = None,
    group_id: Optional[UUID] = None
) -> tuple[Review, bool]:
    """
    Create or update the author's review of a song in one scope.

    This operation:
    1. Validates rating range and content length (before any write)
    2. Validates the song exists
    3. Checks group membership for group-scoped submissions
    4. Looks up the review with the exact (author, song, group) key
    5. Updates it in place, or creates it if absent
    6. Recovers from a concurrent insert of the same key by retrying as
       an update (the unique constraints are the serialization point)

    Args:
        author: User submitting the rating
        song_id: UUID of the rated song
        rating: Rating in [0, 10]; quantized to one decimal
        content: Optional comment; None leaves an existing comment untouched
        group_id: Group scope, None for public

    Returns:
        Tuple of (review, created)

    Raises:
        InvalidRatingError: If rating not in 0-10 range
        InvalidContentError: If content is too long
        SongNotFoundError: If song doesn't exist
        ForbiddenScopeError: If author is not a member of the group
    """
    rating = validate_rating(rating)
    content = validate_content(content)

    if not Song.objects.filter(id=song_id).exists():
        raise SongNotFoundError("Song not found")

    if group_id is not None and not is_member(user_id=author.id, group_id=group_id):
        raise ForbiddenScopeError("You must be a member of this group to review in it")

    attempts = settings.REVIEW_UPSERT_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            review, created = _upsert_once(
                author=author,
                song_id=song_id,
                group_id=group_id,
                rating=rating,
                content=content,
            )
        except ReviewConflictError as e:
            logger.warning("%s (attempt %d/%d), retrying as update", e, attempt, attempts)
            continue

        logger.info(
            "Review %s %s: author=%s song=%s scope=%s rating=%s",
            review.id, 'created' if created else 'updated',
            author.id, song_id, review.scope_label, rating,
        )
        return review, created

    raise ReviewConflictError(
        f"Could not settle review for song {song_id} after {attempts} attempts"
    )


def get_review_by_id(*, review_id: UUID) -> Review:
    """
    Retrieve a review by ID.

    Raises:
        ReviewNotFoundError: If review doesn't exist
    """
    try:
        review = Review.objects.select_related('author', 'song', 'group').get(id=review_id)
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    return review


@transaction.atomic
def update_review(
    *,
    review_id: UUID,
    user: User,
    rating=None,
    content: Optional[str] = None
) -> Review:
    """
    Update an existing review by id.

    Only the author can update. Song, author and scope cannot be changed.

    Raises:
        ReviewNotFoundError: If review doesn't exist
        UnauthorizedReviewActionError: If user is not the author
        InvalidRatingError: If rating not in 0-10 range
        InvalidContentError: If content is too long
    """
    if rating is not None:
        rating = validate_rating(rating)
    content = validate_content(content)

    try:
        review = (
            Review.objects
            .select_for_update()
            .get(id=review_id)
        )
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    if review.author_id != user.id:
        raise UnauthorizedReviewActionError("You can only update your own reviews")

    if rating is not None:
        review.rating = rating
    if content is not None:
        review.content = content

    review.save()
    return review


@transaction.atomic
def delete_review(*, review_id: UUID, user: User) -> None:
    """
    Delete a review.

    Raises:
        ReviewNotFoundError: If review doesn't exist
        UnauthorizedReviewActionError: If user is not the author
    """
    try:
        review = (
            Review.objects
            .select_for_update()
            .get(id=review_id)
        )
    except Review.DoesNotExist:
        raise ReviewNotFoundError("Review not found")

    if review.author_id != user.id:
        raise UnauthorizedReviewActionError("You can only delete your own reviews")

    review.delete()
    logger.info("Review %s deleted by %s", review_id, user.id)


def get_song_reviews(
    *,
    song_id: UUID,
    viewer,
    scope: Optional[Scope] = None
) -> QuerySet[Review]:
    """
    Get the reviews of a song the viewer is allowed to see.

    Args:
        song_id: UUID of the song
        viewer: Requesting user (may be anonymous)
        scope: Restrict to one scope; default is everything visible
            (public reviews plus the viewer's groups)

    Raises:
        SongNotFoundError: If song doesn't exist
        ForbiddenScopeError: If scope is a group the viewer is not in
    """
    if not Song.objects.filter(id=song_id).exists():
        raise SongNotFoundError("Song not found")

    if scope is None:
        predicate = visible_reviews_q(viewer=viewer)
    else:
        predicate = resolve_scope(viewer=viewer, scope=scope)

    return (
        Review.objects
        .filter(predicate, song_id=song_id)
        .select_related('author', 'group')
        .order_by('-created_at')
    )


def get_user_song_reviews(
    *,
    user_id: UUID,
    song_ids: list[UUID],
    viewer,
    group_id: Optional[UUID] = None
) -> QuerySet[Review]:
    """
    Get one user's reviews for a set of songs in a single scope.

    Used by clients to fill in "your rating" next to aggregate stats.

    Args:
        user_id: Author whose reviews to fetch
        song_ids: Songs to look up
        viewer: Requesting user
        group_id: Group scope, None for public

    Raises:
        ForbiddenScopeError: If group scope and viewer is not a member
    """
    if not song_ids:
        return Review.objects.none()

    queryset = Review.objects.filter(author_id=user_id, song_id__in=song_ids)

    if group_id is None:
        queryset = queryset.filter(group__isnull=True)
    else:
        queryset = queryset.filter(resolve_scope(viewer=viewer, scope=Scope.group(group_id)))

    return queryset.order_by('song_id')
