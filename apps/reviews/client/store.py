"""
Client-side cache of one album's ratings.

The store merges server aggregates with the viewer's unconfirmed local
edits. Ratings are written optimistically and submitted at once; comments
are debounced per song. Every fetch and every local write takes a tick from
one counter, and the ticks decide which value wins when a fetch resolves
after a newer local write.
"""

import enum
import itertools
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from apps.reviews.exceptions import ReviewsServiceError
from apps.reviews.ratings import validate_rating
from apps.reviews.scopes import Scope
from .debounce import Debouncer, DEFAULT_QUIET_PERIOD
from .transport import ReviewTransport, TransportError

logger = logging.getLogger(__name__)

# Failures a fetch or commit may end with
REQUEST_ERRORS = (TransportError, ReviewsServiceError)


class StoreClosedError(Exception):
    """The store was closed; it accepts no more edits."""
    pass


class FetchStatus(enum.Enum):
    FRESH = 'fresh'
    # Scoped fetch failed, public numbers are shown instead
    DEGRADED = 'degraded'
    # Nothing could be fetched, cached numbers are shown
    STALE = 'stale'


@dataclass
class PendingValue:
    """A local value the server has not been seen to agree with yet."""

    value: object
    issued_at: int
    confirmed_at: Optional[int] = None


@dataclass
class OwnReview:
    rating: Optional[Decimal] = None
    content: str = ''


@dataclass
class SongView:
    """What the album view shows for one song."""

    song_id: UUID
    track_number: int
    title: str
    duration: int
    average_rating: Decimal = Decimal('0')
    review_count: int = 0
    my_rating: Optional[Decimal] = None
    my_content: str = ''
    rating_pending: bool = False
    content_pending: bool = False


def _as_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _as_decimal(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


class ReconciliationStore:
    """
    Album view state for one viewer.

    Own ratings and comments are kept per (song, group) so switching the
    scope filter shows the rating stored in that scope. The user scope shows
    the viewer's public values.

    Example:
        >>> store = ReconciliationStore(transport, album_id=album.id, viewer_id=me.id)
        >>> await store.refresh()
        >>> await store.rate(song.id, '8.5')
        >>> store.edit_content(song.id, 'Great bridge')
        >>> store.close()
    """

    def __init__(
        self,
        transport: ReviewTransport,
        *,
        album_id,
        viewer_id=None,
        scope: Optional[Scope] = None,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
    ):
        self.transport = transport
        self.album_id = album_id
        self.viewer_id = viewer_id
        self.scope = scope or Scope.public()
        self.status = FetchStatus.FRESH
        self.last_error: Optional[Exception] = None

        self._debouncer = Debouncer(quiet_period=quiet_period)
        self._clock = itertools.count(1)
        self._closed = False

        # song_id -> latest aggregate row
        self._rows: dict[UUID, dict] = {}
        # (song_id, group_id) -> server-known own review
        self._own: dict[tuple, OwnReview] = {}
        self._pending_ratings: dict[tuple, PendingValue] = {}
        self._pending_contents: dict[tuple, PendingValue] = {}
        # song_id -> group_id of the edit window in progress
        self._edit_windows: dict[UUID, Optional[UUID]] = {}
        # (song_id, group_id) -> tick of the last write applied to _own
        self._applied_at: dict[tuple, int] = {}
        # Issue tick of the newest fetch whose rows are shown
        self._last_applied_fetch = 0

    # State

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def degraded(self) -> bool:
        return self.status is FetchStatus.DEGRADED

    def _tick(self) -> int:
        return next(self._clock)

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Store is closed")

    def _key(self, song_id, group_id=None) -> tuple:
        return (_as_uuid(song_id), group_id)

    def _current_rating(self, key: tuple) -> Optional[Decimal]:
        pending = self._pending_ratings.get(key)
        if pending is not None:
            return pending.value
        own = self._own.get(key)
        return own.rating if own else None

    def song(self, song_id) -> Optional[SongView]:
        song_id = _as_uuid(song_id)
        row = self._rows.get(song_id)
        if row is None:
            return None

        # Degraded views show public numbers, so own values are public too
        group_id = None if self.degraded else self.scope.group_id
        key = self._key(song_id, group_id)
        own = self._own.get(key) or OwnReview()
        rating = self._pending_ratings.get(key)
        content = self._pending_contents.get(key)

        return SongView(
            song_id=song_id,
            track_number=row['track_number'],
            title=row['title'],
            duration=row['duration'],
            average_rating=_as_decimal(row['average_rating']) or Decimal('0'),
            review_count=row['review_count'],
            my_rating=rating.value if rating else own.rating,
            my_content=content.value if content else own.content,
            rating_pending=rating is not None,
            content_pending=content is not None,
        )

    def songs(self) -> list[SongView]:
        views = [self.song(song_id) for song_id in self._rows]
        return sorted(views, key=lambda view: view.track_number)

    # Fetching

    async def refresh(self) -> FetchStatus:
        """
        Fetch the active scope and merge it with local edits.

        A failed group or user scope falls back to public numbers
        (``DEGRADED``); a failed public fetch keeps the cached rows
        (``STALE``). Neither raises.

        Results of a fetch issued before the one already shown, or for a
        scope the view has since left, are dropped.
        """
        self._ensure_open()
        issued_at = self._tick()
        scope = self.scope
        status = FetchStatus.FRESH
        error = None

        try:
            rows = await self.transport.fetch_album_stats(self.album_id, scope)
        except REQUEST_ERRORS as e:
            if scope.is_public:
                return self._mark_stale(e, issued_at=issued_at, scope=scope)
            logger.warning("Fetching %s for album %s failed (%s), falling back to public", scope, self.album_id, e)
            status, error = FetchStatus.DEGRADED, e
            try:
                rows = await self.transport.fetch_album_stats(self.album_id, Scope.public())
            except REQUEST_ERRORS as e:
                return self._mark_stale(e, issued_at=issued_at, scope=scope)

        if self._superseded(issued_at, scope):
            return self.status
        self._last_applied_fetch = issued_at
        self._rows = {_as_uuid(row['song_id']): row for row in rows}

        # Own values always come from the scope submissions go to
        own_scope = scope if status is FetchStatus.FRESH else Scope.public()
        group_id = own_scope.group_id
        if self.viewer_id is not None and self._rows:
            try:
                reviews = await self.transport.fetch_user_reviews(self.viewer_id, list(self._rows), own_scope)
            except REQUEST_ERRORS as e:
                logger.warning("Fetching own reviews for album %s failed: %s", self.album_id, e)
            else:
                # A newer refresh may have replaced the rows meanwhile
                if self._superseded(issued_at, scope):
                    return self.status
                self._merge_own(reviews, group_id=group_id, issued_at=issued_at)

        self.status = status
        self.last_error = error
        logger.debug("Album %s refreshed at tick %d: %s, %d songs", self.album_id, issued_at, status.value, len(self._rows))
        return status

    def _superseded(self, issued_at: int, scope: Scope) -> bool:
        if issued_at < self._last_applied_fetch or scope != self.scope:
            logger.debug("Dropping %s fetch for album %s issued at tick %d", scope, self.album_id, issued_at)
            return True
        return False

    def _mark_stale(self, error: Exception, *, issued_at: int, scope: Scope) -> FetchStatus:
        if self._superseded(issued_at, scope):
            return self.status
        logger.warning("Fetching album %s failed, keeping cached ratings: %s", self.album_id, error)
        self.status = FetchStatus.STALE
        self.last_error = error
        return self.status

    @staticmethod
    def _settle(pending: dict, key: tuple, fetched, issued_at: int) -> bool:
        """
        Decide whether a fetched value may replace a pending local one.

        The pending value is dropped once the server agrees with it, or once a
        fetch issued after its confirmation comes back.
        """
        local = pending.get(key)
        if local is None:
            return True
        if fetched == local.value or (local.confirmed_at is not None and issued_at > local.confirmed_at):
            del pending[key]
            return True
        return False

    def _merge_own(self, reviews: list[dict], *, group_id, issued_at: int) -> None:
        by_song = {_as_uuid(review['song']): review for review in reviews}

        for song_id in self._rows:
            key = self._key(song_id, group_id)
            # Something newer than this snapshot was already written here
            if issued_at < self._applied_at.get(key, 0):
                continue
            self._applied_at[key] = issued_at
            review = by_song.get(song_id)
            fetched = OwnReview(
                rating=_as_decimal(review['rating']) if review else None,
                content=(review.get('content') or '') if review else '',
            )
            cached = self._own.setdefault(key, OwnReview())

            if self._settle(self._pending_ratings, key, fetched.rating, issued_at):
                cached.rating = fetched.rating
            if self._settle(self._pending_contents, key, fetched.content, issued_at):
                cached.content = fetched.content

    # Writing

    def _remember(self, key: tuple, review: dict, confirmed_at: int) -> None:
        self._applied_at[key] = confirmed_at
        own = self._own.setdefault(key, OwnReview())
        own.rating = _as_decimal(review.get('rating'))
        own.content = review.get('content') or ''

    async def rate(self, song_id, rating) -> dict:
        """
        Rate a song in the active scope right away.

        The new value shows immediately. If the submission fails it is
        rolled back and the error is raised.

        Raises:
            StoreClosedError: After ``close()``
            InvalidRatingError: Not a number in [0, 10]; nothing is shown or sent
            ReviewsServiceError: The server rejected the rating
            TransportError: The request failed
        """
        self._ensure_open()
        group_id = self.scope.group_id
        key = self._key(song_id, group_id)
        rating = validate_rating(rating)

        pending = PendingValue(rating, issued_at=self._tick())
        self._pending_ratings[key] = pending

        payload = {
            'song_id': key[0],
            'rating': rating,
            'content': self._pending_contents[key].value if key in self._pending_contents else None,
            'group_id': group_id,
        }
        try:
            review = await self.transport.submit_review(payload)
        except REQUEST_ERRORS as e:
            if self._pending_ratings.get(key) is pending:
                del self._pending_ratings[key]
            logger.warning("Rating song %s failed, rolled back: %s", key[0], e)
            raise

        # A newer rate() for the same song owns the slot now
        if self._pending_ratings.get(key) is pending:
            pending.confirmed_at = self._tick()
            self._remember(key, review, pending.confirmed_at)
        return review

    def edit_content(self, song_id, content: str) -> None:
        """
        Change the comment locally and schedule its commit.

        Only the last text of a quiet period is sent, to the scope that was
        active when the first keystroke of that period happened.

        Raises:
            StoreClosedError: After ``close()``
        """
        self._ensure_open()
        song_id = _as_uuid(song_id)

        if not self._debouncer.pending(song_id):
            self._edit_windows[song_id] = self.scope.group_id
        key = self._key(song_id, self._edit_windows[song_id])

        self._pending_contents[key] = PendingValue(content, issued_at=self._tick())
        self._debouncer.schedule(song_id, lambda: self._commit_content(song_id))

    def set_scope(self, scope: Scope) -> None:
        """Switch the scope filter. Call ``refresh()`` to load it."""
        self._ensure_open()
        if scope != self.scope:
            logger.debug("Album %s scope %s -> %s", self.album_id, self.scope, scope)
            self.scope = scope

    async def _commit_content(self, song_id: UUID) -> None:
        group_id = self._edit_windows.pop(song_id, None)
        key = self._key(song_id, group_id)
        pending = self._pending_contents.get(key)
        if pending is None:
            return

        rating = self._current_rating(key)
        if rating is None:
            # Kept pending: the next rate() sends it along
            logger.info("Not committing comment for song %s: no rating yet", song_id)
            return

        payload = {
            'song_id': song_id,
            'rating': rating,
            'content': pending.value,
            'group_id': group_id,
        }
        try:
            review = await self.transport.submit_review(payload)
        except REQUEST_ERRORS as e:
            self.last_error = e
            logger.warning("Committing comment for song %s failed: %s", song_id, e)
            return

        confirmed_at = self._tick()
        if self._pending_contents.get(key) is pending:
            pending.confirmed_at = confirmed_at
        # Rating may have moved on while the commit was in flight
        if key not in self._pending_ratings:
            self._remember(key, review, confirmed_at)
        else:
            self._applied_at[key] = confirmed_at
            self._own.setdefault(key, OwnReview()).content = review.get('content') or ''

    async def flush(self) -> None:
        """Wait for every scheduled and in-flight comment commit."""
        await self._debouncer.join()

    def close(self) -> None:
        """Drop scheduled comment commits without sending them."""
        if self._closed:
            return
        self._closed = True
        self._debouncer.close()
        self._edit_windows.clear()
        logger.debug("Store for album %s closed", self.album_id)
