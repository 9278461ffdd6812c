"""Statistics service - per-song rating aggregates segmented by scope."""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from uuid import UUID

from django.db.models import Avg, Count

from apps.music.models import Album
from apps.reviews.models import Review
from apps.reviews.scopes import Scope
from apps.reviews.exceptions import AlbumNotFoundError
from .visibility import resolve_scopes

logger = logging.getLogger(__name__)

DISPLAY_QUANTUM = Decimal('0.1')


@dataclass(frozen=True)
class AggregateStat:
    """
    Average and count of the ratings matching one scope for one song.

    ``average`` keeps full precision; round only for display. A zero
    ``count`` means no data, whatever ``average`` says.
    """

    average: Decimal = Decimal('0')
    count: int = 0

    @property
    def display_average(self) -> Decimal:
        return self.average.quantize(DISPLAY_QUANTUM, rounding=ROUND_HALF_UP)


def aggregate_song_stats(
    *,
    song_ids: Iterable[UUID],
    predicates: dict,
) -> dict:
    """
    Compute {average, count} per song for every scope predicate.

    All scopes are evaluated in a single grouped query using conditional
    aggregates, one Avg/Count pair per scope.

    Args:
        song_ids: Songs to aggregate
        predicates: Mapping scope -> Q filter (from the visibility service)

    Returns:
        {song_id: {scope: AggregateStat}} with an entry for every
        requested song and scope, in the order given.

    Example:
        >>> stats = aggregate_song_stats(song_ids=[song.id], predicates={Scope.public(): Q(group__isnull=True)})
        >>> stats[song.id][Scope.public()].count
        3
    """
    song_ids = list(dict.fromkeys(song_ids))
    scopes = list(predicates)

    result = {
        song_id: {scope: AggregateStat() for scope in scopes}
        for song_id in song_ids
    }
    if not song_ids or not scopes:
        return result

    annotations = {}
    for index, scope in enumerate(scopes):
        annotations[f'avg_{index}'] = Avg('rating', filter=predicates[scope])
        annotations[f'count_{index}'] = Count('id', filter=predicates[scope])

    rows = (
        Review.objects
        .filter(song_id__in=song_ids)
        .values('song_id')
        .annotate(**annotations)
        .order_by()
    )

    for row in rows:
        per_scope = result[row['song_id']]
        for index, scope in enumerate(scopes):
            count = row[f'count_{index}']
            if not count:
                continue
            per_scope[scope] = AggregateStat(
                average=Decimal(row[f'avg_{index}']),
                count=count,
            )

    return result


def get_album_song_stats(
    *,
    album_id: UUID,
    viewer,
    scopes: Optional[list] = None,
) -> dict:
    """
    Get rating statistics for every song of an album in the requested scopes.

    This operation:
    1. Validates the album exists
    2. Resolves every requested scope for the viewer (forbidden scopes are
       reported, not raised)
    3. Aggregates all allowed scopes in one pass
    4. Builds one row per song per scope, ordered by track number

    Args:
        album_id: UUID of the album
        viewer: Requesting user (may be anonymous)
        scopes: Scopes to compute; defaults to public only

    Returns:
        Dictionary with:
        - scopes: dict - scope label -> list of song rows
          {song_id, track_number, title, duration, average_rating, review_count}
        - forbidden: dict - scope label -> reason

    Raises:
        AlbumNotFoundError: If album doesn't exist
    """
    try:
        album = Album.objects.get(id=album_id)
    except Album.DoesNotExist:
        raise AlbumNotFoundError("Album not found")

    songs = list(
        album.songs
        .order_by('track_number')
        .values('id', 'title', 'track_number', 'duration')
    )

    resolution = resolve_scopes(viewer=viewer, scopes=scopes or [Scope.public()])
    stats = aggregate_song_stats(
        song_ids=[song['id'] for song in songs],
        predicates=resolution.predicates,
    )

    data = {
        'scopes': {},
        'forbidden': {str(scope): str(error) for scope, error in resolution.forbidden.items()},
    }
    for scope in resolution.scopes:
        data['scopes'][str(scope)] = [
            {
                'song_id': song['id'],
                'track_number': song['track_number'],
                'title': song['title'],
                'duration': song['duration'],
                'average_rating': stats[song['id']][scope].display_average,
                'review_count': stats[song['id']][scope].count,
            }
            for song in songs
        ]

    logger.debug(
        "Album %s stats: %d songs, scopes=%s, forbidden=%s",
        album.id, len(songs), list(data['scopes']), list(data['forbidden']),
    )
    return data
