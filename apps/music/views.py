from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.reviews.serializers import AlbumSongStatsSerializer
from apps.reviews.views import ErrorResponseSerializer, parse_scope_param, service_error_response


@extend_schema(
    parameters=[
        OpenApiParameter(
            'scope',
            OpenApiTypes.STR,
            many=True,
            description='public, group:<uuid> or user:<uuid>; repeat for several scopes (default: public)',
        ),
    ],
    responses={
        200: AlbumSongStatsSerializer,
        400: ErrorResponseSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
    },
    description="Per-song average rating and review count for an album, one list per requested scope. "
                "Scopes the viewer may not see are listed under 'forbidden'.",
    tags=['albums'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def album_song_stats(request, album_id):
    """Get album song statistics using service layer."""
    from apps.reviews.services import get_album_song_stats
    from apps.reviews.exceptions import ReviewsServiceError

    scopes = [parse_scope_param(value) for value in request.query_params.getlist('scope')]

    try:
        data = get_album_song_stats(album_id=album_id, viewer=request.user, scopes=scopes)
    except ReviewsServiceError as e:
        return service_error_response(e)

    if not data['scopes'] and data['forbidden']:
        return Response(
            {'error': next(iter(data['forbidden'].values())), 'forbidden': data['forbidden']},
            status=status.HTTP_403_FORBIDDEN
        )

    serializer = AlbumSongStatsSerializer(data)
    return Response(serializer.data)
