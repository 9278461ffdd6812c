"""
Visibility service - which reviews a viewer may see in a scope.

Membership is checked before any predicate is handed to aggregation, so a
non-member learns nothing about a group's reviews, not even that they exist.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional
from uuid import UUID

from django.db.models import Q

from apps.groups.services import is_member, get_user_group_ids
from apps.reviews.scopes import Scope, ScopeKind
from apps.reviews.exceptions import ForbiddenScopeError

logger = logging.getLogger(__name__)


@dataclass
class ScopeResolution:
    """Outcome of resolving a batch of scopes for one viewer."""

    predicates: dict = field(default_factory=dict)
    forbidden: dict = field(default_factory=dict)

    @property
    def scopes(self) -> list:
        return list(self.predicates)


def get_viewer_id(viewer) -> Optional[UUID]:
    """Return the viewer's id, or None for anonymous/absent viewers."""
    if viewer is None or not getattr(viewer, 'is_authenticated', False):
        return None
    return viewer.id


def get_viewer_group_ids(viewer) -> set[UUID]:
    return get_user_group_ids(user_id=get_viewer_id(viewer))


def resolve_scope(*, viewer, scope: Scope, viewer_group_ids: Optional[set] = None) -> Q:
    """
    Build the review filter for one scope.

    Args:
        viewer: Requesting user (may be anonymous or None)
        scope: Scope to resolve
        viewer_group_ids: Pre-fetched group ids of the viewer, to avoid
            re-querying memberships in batch calls

    Returns:
        Q object selecting the eligible reviews

    Raises:
        ForbiddenScopeError: Group scope requested by a non-member
    """
    if scope.kind == ScopeKind.PUBLIC:
        return Q(group__isnull=True)

    viewer_id = get_viewer_id(viewer)

    if scope.kind == ScopeKind.GROUP:
        if viewer_group_ids is not None:
            allowed = scope.id in viewer_group_ids
        else:
            allowed = is_member(user_id=viewer_id, group_id=scope.id)
        if not allowed:
            logger.info("Viewer %s denied access to %s", viewer_id, scope)
            raise ForbiddenScopeError("You must be a member of this group to see its ratings")
        return Q(group_id=scope.id)

    # User scope: never reveal u's ratings in groups the viewer cannot see.
    if viewer_group_ids is None:
        viewer_group_ids = get_user_group_ids(user_id=viewer_id)
    visible = Q(group__isnull=True)
    if viewer_group_ids:
        visible |= Q(group_id__in=viewer_group_ids)
    return Q(author_id=scope.id) & visible


def resolve_scopes(*, viewer, scopes: Iterable[Scope]) -> ScopeResolution:
    """
    Resolve several scopes at once.

    Each scope is enforced independently: a rejected group scope is
    recorded in ``forbidden`` and does not abort the others.
    """
    viewer_group_ids = get_viewer_group_ids(viewer)
    resolution = ScopeResolution()

    for scope in dict.fromkeys(scopes):
        try:
            resolution.predicates[scope] = resolve_scope(
                viewer=viewer,
                scope=scope,
                viewer_group_ids=viewer_group_ids,
            )
        except ForbiddenScopeError as e:
            resolution.forbidden[scope] = e

    return resolution


def visible_reviews_q(*, viewer) -> Q:
    """Everything the viewer may read: public reviews plus their groups' reviews."""
    group_ids = get_viewer_group_ids(viewer)
    q = Q(group__isnull=True)
    if group_ids:
        q |= Q(group_id__in=group_ids)
    return q
