from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator, MaxLengthValidator
from django.db import models
from django.db.models import Q
import uuid

from apps.reviews.ratings import RATING_MIN, RATING_MAX


class Review(models.Model):
    """
    A user's rating (and optional comment) of a song within one scope.

    ``group`` null means the public scope. At most one review exists per
    (author, song, group); the public and each group scope are independent.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    song = models.ForeignKey('music.Song', on_delete=models.CASCADE, related_name='reviews')
    author = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='reviews')
    group = models.ForeignKey('groups.Group', on_delete=models.CASCADE, null=True, blank=True, related_name='reviews')
    rating = models.DecimalField(
        max_digits=3,
        decimal_places=1,
        validators=[MinValueValidator(RATING_MIN), MaxValueValidator(RATING_MAX)],
    )
    content = models.TextField(
        blank=True,
        validators=[MaxLengthValidator(settings.REVIEW_CONTENT_MAX_LENGTH)],
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'reviews'
        constraints = [
            # NULLs are distinct in SQL unique indexes, so the public scope
            # needs its own partial constraint.
            models.UniqueConstraint(
                fields=['author', 'song'],
                condition=Q(group__isnull=True),
                name='unique_public_review_per_song',
            ),
            models.UniqueConstraint(
                fields=['author', 'song', 'group'],
                condition=Q(group__isnull=False),
                name='unique_group_review_per_song',
            ),
        ]
        indexes = [
            models.Index(fields=['song', 'group'], name='reviews_song_group_idx'),
            models.Index(fields=['author', 'created_at'], name='reviews_author_created_idx'),
            models.Index(fields=['group', 'created_at'], name='reviews_group_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.author.get_display_name()} - {self.song.title} ({self.rating})"

    @property
    def scope_label(self):
        return f"group:{self.group_id}" if self.group_id else 'public'
