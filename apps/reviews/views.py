from uuid import UUID

from rest_framework import status, viewsets, serializers as drf_serializers
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .models import Review
from .permissions import IsReviewAuthorOrReadOnly
from .scopes import Scope
from .serializers import (
    ReviewSerializer,
    ReviewSubmitSerializer,
    ReviewUpdateSerializer,
    UserSongReviewsSerializer,
)
from .exceptions import (
    ReviewsServiceError,
    InvalidRatingError,
    InvalidContentError,
    ForbiddenScopeError,
    UnauthorizedReviewActionError,
    ReviewNotFoundError,
    SongNotFoundError,
    AlbumNotFoundError,
    ReviewConflictError,
)

SERVICE_ERROR_STATUS = {
    InvalidRatingError: status.HTTP_400_BAD_REQUEST,
    InvalidContentError: status.HTTP_400_BAD_REQUEST,
    ForbiddenScopeError: status.HTTP_403_FORBIDDEN,
    UnauthorizedReviewActionError: status.HTTP_403_FORBIDDEN,
    ReviewNotFoundError: status.HTTP_404_NOT_FOUND,
    SongNotFoundError: status.HTTP_404_NOT_FOUND,
    AlbumNotFoundError: status.HTTP_404_NOT_FOUND,
    ReviewConflictError: status.HTTP_409_CONFLICT,
}


def service_error_response(error: ReviewsServiceError) -> Response:
    """Convert a domain exception into an ``{'error', 'code'}`` response."""
    http_status = SERVICE_ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return Response({'error': str(error), 'code': error.code}, status=http_status)


def parse_scope_param(value: str) -> Scope:
    try:
        return Scope.parse(value)
    except ValueError as e:
        raise ValidationError({'scope': str(e)})


def parse_uuid(value: str, field: str) -> UUID:
    try:
        return UUID(value.strip())
    except ValueError:
        raise ValidationError({field: 'Expected a UUID'})


def parse_uuid_list(value: str, field: str) -> list[UUID]:
    return [parse_uuid(item, field) for item in value.split(',') if item.strip()]


class ErrorResponseSerializer(drf_serializers.Serializer):
    error = drf_serializers.CharField()
    code = drf_serializers.CharField(required=False)


class ReviewPagination(PageNumberPagination):
    """Custom pagination for reviews."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class ReviewViewSet(viewsets.ModelViewSet):
    """
    ViewSet for song reviews.

    list: Visible reviews (public + viewer's groups), with filters
    create: Submit a rating; creates or updates the review in that scope
    retrieve: Get a visible review
    update: Update a review by id (author only)
    partial_update: Partially update a review (author only)
    destroy: Delete a review (author only)
    """

    queryset = Review.objects.select_related('author', 'song', 'group')
    serializer_class = ReviewSerializer
    permission_classes = [IsAuthenticatedOrReadOnly, IsReviewAuthorOrReadOnly]
    pagination_class = ReviewPagination

    def get_queryset(self):
        """
        Restrict to reviews the viewer may see and apply query filters.

        Filters:
        - song: UUID of song
        - author: UUID of author
        - scope: public / group:<uuid> / user:<uuid>
        - min_rating / max_rating
        """
        from apps.reviews.services import resolve_scope, visible_reviews_q

        queryset = super().get_queryset()
        params = self.request.query_params

        scope = params.get('scope')
        if scope:
            try:
                predicate = resolve_scope(viewer=self.request.user, scope=parse_scope_param(scope))
            except ForbiddenScopeError as e:
                raise PermissionDenied(str(e))
        else:
            predicate = visible_reviews_q(viewer=self.request.user)
        queryset = queryset.filter(predicate)

        song_id = params.get('song')
        if song_id:
            queryset = queryset.filter(song_id=parse_uuid(song_id, 'song'))

        author_id = params.get('author')
        if author_id:
            queryset = queryset.filter(author_id=parse_uuid(author_id, 'author'))

        min_rating = params.get('min_rating')
        if min_rating:
            queryset = queryset.filter(rating__gte=min_rating)

        max_rating = params.get('max_rating')
        if max_rating:
            queryset = queryset.filter(rating__lte=max_rating)

        return queryset.order_by('-created_at')

    @extend_schema(
        request=ReviewSubmitSerializer,
        responses={
            201: ReviewSerializer,
            200: ReviewSerializer,
            400: ErrorResponseSerializer,
            403: ErrorResponseSerializer,
            404: ErrorResponseSerializer,
        },
        description="Submit a rating. Creates the review for (user, song, scope) or updates the existing one.",
    )
    def create(self, request, *args, **kwargs):
        """Upsert a review using service layer."""
        from apps.reviews.services import submit_review

        serializer = ReviewSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            review, created = submit_review(
                author=request.user,
                song_id=data['song'],
                rating=data['rating'],
                content=data.get('content'),
                group_id=data.get('group'),
            )
        except ReviewsServiceError as e:
            return service_error_response(e)

        return Response(
            ReviewSerializer(review).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    @extend_schema(request=ReviewUpdateSerializer, responses={200: ReviewSerializer, 403: ErrorResponseSerializer})
    def update(self, request, *args, **kwargs):
        """Update review by id using service layer."""
        from apps.reviews.services import update_review

        instance = self.get_object()
        serializer = ReviewUpdateSerializer(data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)

        try:
            review = update_review(
                review_id=instance.id,
                user=request.user,
                rating=serializer.validated_data.get('rating'),
                content=serializer.validated_data.get('content'),
            )
        except ReviewsServiceError as e:
            return service_error_response(e)

        return Response(ReviewSerializer(review).data)

    def destroy(self, request, *args, **kwargs):
        """Delete review using service layer."""
        from apps.reviews.services import delete_review

        instance = self.get_object()
        try:
            delete_review(review_id=instance.id, user=request.user)
        except ReviewsServiceError as e:
            return service_error_response(e)

        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        parameters=[
            OpenApiParameter('user', OpenApiTypes.UUID, required=True, description='Author of the reviews'),
            OpenApiParameter('songs', OpenApiTypes.STR, required=True, description='Comma-separated song UUIDs'),
            OpenApiParameter('group', OpenApiTypes.UUID, description='Group scope (public if omitted)'),
        ],
        responses={200: UserSongReviewsSerializer, 400: ErrorResponseSerializer, 403: ErrorResponseSerializer},
    )
    @action(detail=False, methods=['get'])
    def user_songs(self, request):
        """Get one user's reviews for a set of songs in one scope."""
        from apps.reviews.services import get_user_song_reviews

        user_id = request.query_params.get('user')
        songs = request.query_params.get('songs')
        if not user_id:
            return Response({'error': 'user is required'}, status=status.HTTP_400_BAD_REQUEST)
        if not songs:
            return Response({'error': 'songs is required'}, status=status.HTTP_400_BAD_REQUEST)

        user_id = parse_uuid(user_id, 'user')
        song_ids = parse_uuid_list(songs, 'songs')
        group = request.query_params.get('group')
        group_id = parse_uuid(group, 'group') if group else None

        try:
            reviews = list(get_user_song_reviews(
                user_id=user_id,
                song_ids=song_ids,
                viewer=request.user,
                group_id=group_id,
            ))
        except ReviewsServiceError as e:
            return service_error_response(e)

        return Response({
            'reviews': ReviewSerializer(reviews, many=True).data,
            'total': len(reviews),
        })
