"""Rating bounds and validation, shared by the server and the client."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from apps.reviews.exceptions import InvalidRatingError

RATING_MIN = Decimal('0.0')
RATING_MAX = Decimal('10.0')
RATING_QUANTUM = Decimal('0.1')


def validate_rating(rating) -> Decimal:
    """
    Check a rating is a number in [0, 10] and quantize it to one decimal.

    Raises:
        InvalidRatingError: If rating is missing, not numeric or out of range
    """
    if rating is None or isinstance(rating, bool):
        raise InvalidRatingError("Rating must be between 0 and 10")
    try:
        value = Decimal(str(rating))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRatingError("Rating must be between 0 and 10")

    if not value.is_finite() or not (RATING_MIN <= value <= RATING_MAX):
        raise InvalidRatingError("Rating must be between 0 and 10")

    return value.quantize(RATING_QUANTUM, rounding=ROUND_HALF_UP)
