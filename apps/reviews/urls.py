from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'reviews'

router = DefaultRouter()
router.register(r'', views.ReviewViewSet, basename='review')

urlpatterns = [
    # GET    /api/reviews/                 - List visible reviews
    # POST   /api/reviews/                 - Submit rating (create or update in scope)
    # GET    /api/reviews/{id}/            - Get review
    # PUT    /api/reviews/{id}/            - Update review
    # PATCH  /api/reviews/{id}/            - Partial update
    # DELETE /api/reviews/{id}/            - Delete review
    # GET    /api/reviews/user_songs/      - A user's reviews for a set of songs
    path('', include(router.urls)),
]
