"""
Transport between the reconciliation store and the reviews API.

The store only depends on ``ReviewTransport``; ``HttpReviewTransport`` is the
implementation that talks to the DRF endpoints. Blocking ``requests`` calls
run in a worker thread so the event loop stays responsive.
"""

import asyncio
import logging
from typing import Optional

import requests

from apps.reviews.exceptions import (
    ERRORS_BY_CODE,
    InvalidRatingError,
    InvalidContentError,
    ForbiddenScopeError,
    SongNotFoundError,
)
from apps.reviews.scopes import Scope

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10

# DRF field errors of the submit serializer, keyed by field name
FIELD_ERRORS = {
    'rating': InvalidRatingError,
    'content': InvalidContentError,
    'song': SongNotFoundError,
    'group': ForbiddenScopeError,
}


class TransportError(Exception):
    """A request failed before the server could answer, or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ReviewTransport:
    """
    What the store needs from the server.

    Rows returned by ``fetch_album_stats`` have the shape of the album stats
    endpoint ({song_id, track_number, title, duration, average_rating,
    review_count}); reviews have the shape of ``ReviewSerializer``.
    """

    async def fetch_album_stats(self, album_id, scope: Scope) -> list[dict]:
        raise NotImplementedError

    async def fetch_user_reviews(self, user_id, song_ids: list, scope: Scope) -> list[dict]:
        raise NotImplementedError

    async def submit_review(self, payload: dict) -> dict:
        raise NotImplementedError


class HttpReviewTransport(ReviewTransport):
    """
    ``ReviewTransport`` over HTTP with JWT bearer authentication.

    Example:
        >>> transport = HttpReviewTransport('http://localhost:8000', token=access_token)
        >>> rows = await transport.fetch_album_stats(album_id, Scope.public())
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f'{self.base_url}{path}'
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise TransportError(f"{method} {path} timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}")

        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response

    @staticmethod
    def _json(response: requests.Response):
        try:
            return response.json()
        except ValueError:
            return None

    def _raise_for_status(self, response: requests.Response) -> None:
        if response.ok:
            return
        body = self._json(response)
        message = body.get('error') if isinstance(body, dict) else None
        raise TransportError(
            message or f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    def _raise_service_error(self, response: requests.Response) -> None:
        """Turn a 4xx submission response back into the domain exception."""
        body = self._json(response)
        if not isinstance(body, dict):
            return

        error_class = ERRORS_BY_CODE.get(body.get('code'))
        if error_class is not None:
            raise error_class(body.get('error', ''))

        for field, error_class in FIELD_ERRORS.items():
            if field in body:
                detail = body[field]
                if isinstance(detail, list):
                    detail = ' '.join(str(item) for item in detail)
                raise error_class(str(detail))

    async def fetch_album_stats(self, album_id, scope: Scope) -> list[dict]:
        response = await asyncio.to_thread(
            self._request,
            'GET',
            f'/api/albums/{album_id}/songs/stats/',
            params={'scope': str(scope)},
        )
        self._raise_for_status(response)
        return response.json()['scopes'].get(str(scope), [])

    async def fetch_user_reviews(self, user_id, song_ids: list, scope: Scope) -> list[dict]:
        params = {
            'user': str(user_id),
            'songs': ','.join(str(song_id) for song_id in song_ids),
        }
        if scope.group_id is not None:
            params['group'] = str(scope.group_id)

        response = await asyncio.to_thread(self._request, 'GET', '/api/reviews/user_songs/', params=params)
        self._raise_for_status(response)
        return response.json()['reviews']

    async def submit_review(self, payload: dict) -> dict:
        """
        POST a rating submission.

        Raises:
            ReviewsServiceError: The server rejected the submission (typed)
            TransportError: Network failure or unexpected server error
        """
        body = {
            'song': str(payload['song_id']),
            'rating': str(payload['rating']),
            'group': str(payload['group_id']) if payload.get('group_id') else None,
        }
        if payload.get('content') is not None:
            body['content'] = payload['content']

        response = await asyncio.to_thread(self._request, 'POST', '/api/reviews/', json=body)
        if 400 <= response.status_code < 500:
            self._raise_service_error(response)
        self._raise_for_status(response)
        return response.json()
