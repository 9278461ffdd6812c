from django.contrib import admin
from apps.music.models import Album, Song


class SongInline(admin.TabularInline):
    """Inline admin for album tracks."""
    model = Song
    extra = 1
    fields = ['track_number', 'title', 'duration']


@admin.register(Album)
class AlbumAdmin(admin.ModelAdmin):
    """Admin interface for Albums."""

    list_display = ['title', 'release_date', 'song_count', 'created_at']
    search_fields = ['title']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [SongInline]
    ordering = ['-release_date']

    def song_count(self, obj):
        """Show number of tracks."""
        return obj.songs.count()
    song_count.short_description = 'Tracks'


@admin.register(Song)
class SongAdmin(admin.ModelAdmin):
    """Admin interface for Songs."""

    list_display = ['title', 'album', 'track_number', 'duration']
    list_filter = ['album']
    search_fields = ['title', 'album__title']
    ordering = ['album', 'track_number']

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('album')
