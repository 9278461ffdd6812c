from django.contrib import admin
from .models import Review


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Reviews."""

    list_display = [
        'get_song_title',
        'author',
        'rating',
        'scope_label',
        'created_at'
    ]
    list_filter = [
        'created_at',
        'group',
    ]
    search_fields = [
        'song__title',
        'song__album__title',
        'author__email',
        'author__username',
        'content'
    ]
    readonly_fields = ['created_at', 'updated_at']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('song', 'author', 'rating', 'group')
        }),
        ('Review Content', {
            'fields': ('content',)
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_song_title(self, obj):
        """Display song with album in list."""
        return f"{obj.song.album.title} - {obj.song.title}"
    get_song_title.short_description = 'Song'
    get_song_title.admin_order_field = 'song__title'

    def scope_label(self, obj):
        return obj.scope_label
    scope_label.short_description = 'Scope'

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('author', 'song__album', 'group')
