"""
Reviews services - Business logic layer.

This package contains all business operations for the reviews app:
- Visibility rules per scope (public / group / user)
- Review upsert and CRUD operations
- Per-song rating statistics
"""

# Visibility
from .visibility import (
    ScopeResolution,
    resolve_scope,
    resolve_scopes,
    visible_reviews_q,
)

# Review Management
from .review_management import (
    submit_review,
    get_review_by_id,
    update_review,
    delete_review,
    get_song_reviews,
    get_user_song_reviews,
)

# Statistics
from .statistics import (
    AggregateStat,
    aggregate_song_stats,
    get_album_song_stats,
)

# Domain Exceptions
from apps.reviews.exceptions import (
    ReviewsServiceError,
    ReviewNotFoundError,
    SongNotFoundError,
    AlbumNotFoundError,
    InvalidRatingError,
    InvalidContentError,
    ForbiddenScopeError,
    UnauthorizedReviewActionError,
    ReviewConflictError,
)

__all__ = [
    # Visibility Services
    'ScopeResolution',
    'resolve_scope',
    'resolve_scopes',
    'visible_reviews_q',
    # Review Management Services
    'submit_review',
    'get_review_by_id',
    'update_review',
    'delete_review',
    'get_song_reviews',
    'get_user_song_reviews',
    # Statistics Services
    'AggregateStat',
    'aggregate_song_stats',
    'get_album_song_stats',
    # Exceptions
    'ReviewsServiceError',
    'ReviewNotFoundError',
    'SongNotFoundError',
    'AlbumNotFoundError',
    'InvalidRatingError',
    'InvalidContentError',
    'ForbiddenScopeError',
    'UnauthorizedReviewActionError',
    'ReviewConflictError',
]
