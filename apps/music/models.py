from django.core.validators import MinValueValidator
from django.db import models
import uuid


class Album(models.Model):
    """Released album. Songs hang off it in track order."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=200, db_index=True)
    release_date = models.DateField(null=True, blank=True)
    cover_image = models.URLField(blank=True, max_length=500)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'albums'
        ordering = ['-release_date', 'title']

    def __str__(self):
        return self.title


class Song(models.Model):
    """Single track of an album."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    album = models.ForeignKey(Album, on_delete=models.CASCADE, related_name='songs')
    title = models.CharField(max_length=200)
    track_number = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    duration = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text='Length in seconds',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'songs'
        unique_together = [['album', 'track_number']]
        indexes = [
            models.Index(fields=['album', 'track_number'], name='songs_album_track_idx'),
        ]
        ordering = ['album', 'track_number']

    def __str__(self):
        return f"{self.track_number}. {self.title}"
