"""
Membership management service.

Answers the membership questions the review engine asks (is this user in
that group, which groups can this viewer see) and handles joining/leaving.
"""

import logging
from typing import Optional
from uuid import UUID

from django.db import transaction, IntegrityError
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.groups.models import Group, GroupMembership, GroupRole

from .exceptions import (
    GroupNotFoundError,
    AlreadyMemberError,
    NotMemberError,
)

logger = logging.getLogger(__name__)


def is_member(*, user_id: Optional[UUID], group_id: UUID) -> bool:
    """
    Check whether a user holds a membership in a group.

    Anonymous viewers (``user_id=None``) are never members.
    """
    if user_id is None:
        return False
    return GroupMembership.objects.filter(user_id=user_id, group_id=group_id).exists()


def get_user_group_ids(*, user_id: Optional[UUID]) -> set[UUID]:
    """Return ids of every group the user belongs to (empty for anonymous)."""
    if user_id is None:
        return set()
    return set(
        GroupMembership.objects
        .filter(user_id=user_id)
        .values_list('group_id', flat=True)
    )


@transaction.atomic
def join_group(
    *,
    group_id: UUID,
    user: User,
    role: str = GroupRole.MEMBER
) -> GroupMembership:
    """
    Add a user to a group.

    Args:
        group_id: UUID of the group
        user: User joining the group
        role: Membership role (admin/member)

    Returns:
        Created GroupMembership instance

    Raises:
        GroupNotFoundError: If group doesn't exist
        AlreadyMemberError: If user is already a member (caught from IntegrityError)
    """
    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if group.has_member(user):
        raise AlreadyMemberError(f"User is already a member of {group.name}")

    try:
        membership = GroupMembership.objects.create(user=user, group=group, role=role)
    except IntegrityError:
        raise AlreadyMemberError(f"User is already a member of {group.name}")

    logger.info("User %s joined group %s as %s", user.id, group.id, role)
    return membership


@transaction.atomic
def leave_group(*, group_id: UUID, user: User) -> None:
    """
    Leave a group.

    Group-scoped reviews the user wrote stay in place; they remain visible
    to the remaining members.

    Raises:
        GroupNotFoundError: If group doesn't exist
        NotMemberError: If user is not a member
    """
    try:
        group = Group.objects.get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    try:
        membership = (
            GroupMembership.objects
            .select_for_update()
            .get(user=user, group=group)
        )
    except GroupMembership.DoesNotExist:
        raise NotMemberError(f"User is not a member of {group.name}")

    membership.delete()
    logger.info("User %s left group %s", user.id, group.id)


def get_group_members(*, group_id: UUID) -> QuerySet[GroupMembership]:
    """
    Get all members of a group.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    return (
        GroupMembership.objects
        .filter(group_id=group_id)
        .select_related('user')
        .order_by('role', 'joined_at')
    )
