"""
Service layer unit tests for groups app.

Tests cover:
- Membership lookups used by review visibility
- Joining and leaving groups
- Error handling
"""

import pytest
from uuid import uuid4

from apps.groups.models import GroupMembership, GroupRole
from apps.groups.services import (
    is_member,
    get_user_group_ids,
    join_group,
    leave_group,
    get_group_members,
)
from apps.groups.services.exceptions import (
    GroupNotFoundError,
    AlreadyMemberError,
    NotMemberError,
)


# =============================================================================
# Membership Lookup Tests
# =============================================================================

@pytest.mark.django_db
class TestMembershipLookups:
    """Tests for is_member and get_user_group_ids."""

    def test_is_member_true_for_member(self, group_with_members, member_user):
        assert is_member(user_id=member_user.id, group_id=group_with_members.id) is True

    def test_is_member_false_for_non_member(self, group, group_other_user):
        assert is_member(user_id=group_other_user.id, group_id=group.id) is False

    def test_is_member_false_for_anonymous(self, group):
        """Anonymous viewers are never members."""
        assert is_member(user_id=None, group_id=group.id) is False

    def test_is_member_false_for_unknown_group(self, member_user):
        assert is_member(user_id=member_user.id, group_id=uuid4()) is False

    def test_get_user_group_ids(self, group_with_members, other_group, group_other_user, member_user):
        assert get_user_group_ids(user_id=member_user.id) == {group_with_members.id}
        assert get_user_group_ids(user_id=group_other_user.id) == {other_group.id}

    def test_get_user_group_ids_anonymous(self, group):
        assert get_user_group_ids(user_id=None) == set()

    def test_group_helpers(self, group_with_members, group_owner, member_user, group_other_user):
        """Model helpers agree with the service lookups."""
        assert group_with_members.has_member(member_user)
        assert not group_with_members.has_member(group_other_user)
        assert group_with_members.is_admin(group_owner)
        assert not group_with_members.is_admin(member_user)
        assert group_with_members.get_user_role(group_other_user) is None


# =============================================================================
# Join / Leave Tests
# =============================================================================

@pytest.mark.django_db
class TestJoinLeave:
    """Tests for join_group, leave_group and get_group_members."""

    def test_join_group_success(self, group, member_user):
        membership = join_group(group_id=group.id, user=member_user)

        assert membership.role == GroupRole.MEMBER
        assert is_member(user_id=member_user.id, group_id=group.id)

    def test_join_group_as_admin(self, group, member_user):
        membership = join_group(group_id=group.id, user=member_user, role=GroupRole.ADMIN)
        assert group.is_admin(member_user)
        assert membership.role == GroupRole.ADMIN

    def test_join_group_already_member(self, group_with_members, member_user):
        with pytest.raises(AlreadyMemberError):
            join_group(group_id=group_with_members.id, user=member_user)

    def test_join_group_not_found(self, member_user):
        with pytest.raises(GroupNotFoundError):
            join_group(group_id=uuid4(), user=member_user)

    def test_leave_group_success(self, group_with_members, member_user):
        leave_group(group_id=group_with_members.id, user=member_user)

        assert not GroupMembership.objects.filter(group=group_with_members, user=member_user).exists()

    def test_leave_group_not_member(self, group, group_other_user):
        with pytest.raises(NotMemberError):
            leave_group(group_id=group.id, user=group_other_user)

    def test_leave_group_not_found(self, member_user):
        with pytest.raises(GroupNotFoundError):
            leave_group(group_id=uuid4(), user=member_user)

    def test_get_group_members_ordered_by_role(self, group_with_members, group_owner, member_user):
        members = list(get_group_members(group_id=group_with_members.id))

        assert [m.user for m in members] == [group_owner, member_user]

    def test_get_group_members_not_found(self):
        with pytest.raises(GroupNotFoundError):
            get_group_members(group_id=uuid4())
