import pytest
from decimal import Decimal
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.groups.models import Group, GroupMembership, GroupRole
from apps.music.models import Album, Song
from apps.reviews.models import Review


def make_client(user=None):
    """API client, authenticated with a JWT access token when a user is given."""
    client = APIClient()
    if user is not None:
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def review_user(db):
    """Create and return a test user for reviews."""
    return User.objects.create_user(
        email='reviewer@example.com',
        password='TestPass123!',
        username='reviewer',
    )


@pytest.fixture
def review_other_user(db):
    """Create and return another test user, outside every group."""
    return User.objects.create_user(
        email='review_other@example.com',
        password='TestPass123!',
        username='review_other',
    )


@pytest.fixture
def review_member_user(db):
    """Create and return a second member of the review group."""
    return User.objects.create_user(
        email='review_member@example.com',
        password='TestPass123!',
        username='review_member',
    )


@pytest.fixture
def review_auth_client(review_user):
    """Return API client authenticated as review user."""
    return make_client(review_user)


@pytest.fixture
def review_other_client(review_other_user):
    """Return API client authenticated as other user."""
    return make_client(review_other_user)


@pytest.fixture
def review_member_client(review_member_user):
    """Return API client authenticated as the second group member."""
    return make_client(review_member_user)


@pytest.fixture
def album(db):
    """Create and return an album with three songs."""
    album = Album.objects.create(title='In Rainbows')
    for number, (title, duration) in enumerate(
        [('15 Step', 237), ('Bodysnatchers', 242), ('Nude', 255)],
        start=1,
    ):
        Song.objects.create(album=album, title=title, track_number=number, duration=duration)
    return album


@pytest.fixture
def song(album):
    """First track of the album."""
    return album.songs.get(track_number=1)


@pytest.fixture
def another_song(album):
    """Second track of the album."""
    return album.songs.get(track_number=2)


@pytest.fixture
def review_group(db, review_user, review_member_user):
    """Group whose members are the review user and the second member."""
    group = Group.objects.create(
        name='Listening Club',
        created_by=review_user,
    )
    GroupMembership.objects.create(user=review_user, group=group, role=GroupRole.ADMIN)
    GroupMembership.objects.create(user=review_member_user, group=group, role=GroupRole.MEMBER)
    return group


@pytest.fixture
def foreign_group(db, review_other_user):
    """Group the review user is not a member of."""
    group = Group.objects.create(name='Closed Circle', created_by=review_other_user)
    GroupMembership.objects.create(user=review_other_user, group=group, role=GroupRole.ADMIN)
    return group


@pytest.fixture
def review(db, review_user, song):
    """Public review by the review user."""
    return Review.objects.create(
        author=review_user,
        song=song,
        rating=Decimal('7.5'),
        content='Great opener',
    )


@pytest.fixture
def group_review(db, review_user, song, review_group):
    """Group-scoped review by the review user."""
    return Review.objects.create(
        author=review_user,
        song=song,
        group=review_group,
        rating=Decimal('9.0'),
        content='Even better with friends',
    )


@pytest.fixture
def worked_example(db, song, review_group, review_user, review_member_user, review_other_user):
    """
    Public ratings 7.0, 7.5, 7.4 (avg 7.3) and group ratings 8.0, 8.2 (avg 8.1)
    for the same song.
    """
    for author, rating in [
        (review_user, '7.0'),
        (review_member_user, '7.5'),
        (review_other_user, '7.4'),
    ]:
        Review.objects.create(author=author, song=song, rating=Decimal(rating))
    for author, rating in [
        (review_user, '8.0'),
        (review_member_user, '8.2'),
    ]:
        Review.objects.create(author=author, song=song, group=review_group, rating=Decimal(rating))
    return song
