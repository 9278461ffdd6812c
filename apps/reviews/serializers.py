from decimal import Decimal

from django.conf import settings
from rest_framework import serializers
from .models import Review
from apps.accounts.models import User
from apps.music.models import Song


class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""

    class Meta:
        model = User
        fields = ['id', 'username', 'image']
        read_only_fields = fields


class SongMinimalSerializer(serializers.ModelSerializer):
    """Minimal song info for nested serialization."""

    class Meta:
        model = Song
        fields = ['id', 'title', 'track_number', 'duration', 'album']
        read_only_fields = fields


class ReviewSerializer(serializers.ModelSerializer):
    """Main review serializer."""

    author = UserMinimalSerializer(read_only=True)
    song_detail = SongMinimalSerializer(source='song', read_only=True)
    rating = serializers.DecimalField(max_digits=3, decimal_places=1, coerce_to_string=False, read_only=True)
    scope = serializers.CharField(source='scope_label', read_only=True)

    class Meta:
        model = Review
        fields = [
            'id',
            'song',
            'song_detail',
            'author',
            'rating',
            'content',
            'group',
            'scope',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ReviewSubmitSerializer(serializers.Serializer):
    """
    Payload of a rating submission.

    Range and length are checked here first and again by the service layer.
    """

    song = serializers.UUIDField()
    rating = serializers.DecimalField(max_digits=4, decimal_places=2, min_value=Decimal('0'), max_value=Decimal('10'))
    content = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        max_length=settings.REVIEW_CONTENT_MAX_LENGTH,
    )
    group = serializers.UUIDField(required=False, allow_null=True)


class ReviewUpdateSerializer(serializers.Serializer):
    """Payload of an update by review id."""

    rating = serializers.DecimalField(max_digits=4, decimal_places=2, min_value=Decimal('0'), max_value=Decimal('10'), required=False)
    content = serializers.CharField(
        required=False,
        allow_blank=True,
        trim_whitespace=False,
        max_length=settings.REVIEW_CONTENT_MAX_LENGTH,
    )


class AlbumSongStatSerializer(serializers.Serializer):
    """Per-song aggregate row for one scope."""

    song_id = serializers.UUIDField()
    track_number = serializers.IntegerField()
    title = serializers.CharField()
    duration = serializers.IntegerField()
    average_rating = serializers.DecimalField(max_digits=3, decimal_places=1, coerce_to_string=False)
    review_count = serializers.IntegerField()


class AlbumSongStatsSerializer(serializers.Serializer):
    """Album stats keyed by scope label."""

    scopes = serializers.DictField(child=AlbumSongStatSerializer(many=True))
    forbidden = serializers.DictField(child=serializers.CharField())


class UserSongReviewsSerializer(serializers.Serializer):
    """A user's reviews for a set of songs."""

    reviews = ReviewSerializer(many=True)
    total = serializers.IntegerField()
