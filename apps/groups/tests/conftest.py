import pytest
from rest_framework.test import APIClient
from apps.accounts.models import User
from apps.groups.models import Group, GroupMembership, GroupRole


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def group_owner(db):
    """Create and return the user who created the group."""
    return User.objects.create_user(
        email='owner@example.com',
        password='TestPass123!',
        username='owner',
    )


@pytest.fixture
def member_user(db):
    """Create and return a member user."""
    return User.objects.create_user(
        email='member@example.com',
        password='TestPass123!',
        username='member',
    )


@pytest.fixture
def group_other_user(db):
    """Create and return a user not in any group."""
    return User.objects.create_user(
        email='other@example.com',
        password='TestPass123!',
        username='other',
    )


@pytest.fixture
def group(db, group_owner):
    """Create and return a test group with admin membership for its creator."""
    group = Group.objects.create(
        name='Friday Listening Club',
        description='New releases every week',
        is_private=True,
        created_by=group_owner,
    )
    GroupMembership.objects.create(
        user=group_owner,
        group=group,
        role=GroupRole.ADMIN,
    )
    return group


@pytest.fixture
def group_with_members(group, member_user):
    """Group with its admin and one member."""
    GroupMembership.objects.create(
        user=member_user,
        group=group,
        role=GroupRole.MEMBER,
    )
    return group


@pytest.fixture
def other_group(db, group_other_user):
    """A second group the other user belongs to."""
    group = Group.objects.create(name='Vinyl Nerds', created_by=group_other_user)
    GroupMembership.objects.create(user=group_other_user, group=group, role=GroupRole.ADMIN)
    return group
