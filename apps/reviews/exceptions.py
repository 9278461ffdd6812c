"""
Domain exceptions for reviews app.

Each error carries a short ``code`` that the API sends next to the message,
so HTTP clients can raise the same exception type on their side.
"""


class ReviewsServiceError(Exception):
    """Base exception for all reviews service errors."""
    code = 'reviews_error'


class ReviewNotFoundError(ReviewsServiceError):
    """Review does not exist or is inaccessible."""
    code = 'review_not_found'


class SongNotFoundError(ReviewsServiceError):
    """Song does not exist."""
    code = 'song_not_found'


class AlbumNotFoundError(ReviewsServiceError):
    """Album does not exist."""
    code = 'album_not_found'


class InvalidRatingError(ReviewsServiceError):
    """Rating must be a number between 0 and 10."""
    code = 'invalid_rating'


class InvalidContentError(ReviewsServiceError):
    """Review content exceeds the length limit."""
    code = 'invalid_content'


class ForbiddenScopeError(ReviewsServiceError):
    """Viewer is not allowed to read or write in the requested scope."""
    code = 'forbidden_scope'


class UnauthorizedReviewActionError(ReviewsServiceError):
    """User cannot modify this review."""
    code = 'not_review_author'


class ReviewConflictError(ReviewsServiceError):
    """
    Concurrent upsert race on the same (author, song, group) key.

    Recovered inside the upsert by retrying as an update.
    """
    code = 'review_conflict'


ERRORS_BY_CODE = {
    error.code: error
    for error in (
        ReviewNotFoundError,
        SongNotFoundError,
        AlbumNotFoundError,
        InvalidRatingError,
        InvalidContentError,
        ForbiddenScopeError,
        UnauthorizedReviewActionError,
        ReviewConflictError,
    )
}
