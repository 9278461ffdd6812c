"""
Groups app services layer.

Membership lookups used by the review visibility rules, plus joining and
leaving groups.
"""

from .exceptions import (
    GroupsServiceError,
    GroupNotFoundError,
    AlreadyMemberError,
    NotMemberError,
)

from .membership_management import (
    is_member,
    get_user_group_ids,
    join_group,
    leave_group,
    get_group_members,
)


__all__ = [
    # Exceptions
    'GroupsServiceError',
    'GroupNotFoundError',
    'AlreadyMemberError',
    'NotMemberError',

    # Membership Management
    'is_member',
    'get_user_group_ids',
    'join_group',
    'leave_group',
    'get_group_members',
]
