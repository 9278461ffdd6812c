from django.urls import path
from . import views

app_name = 'music'

urlpatterns = [
    # GET /api/albums/{id}/songs/stats/?scope=public&scope=group:{uuid}
    path('<uuid:album_id>/songs/stats/', views.album_song_stats, name='album-song-stats'),
]
