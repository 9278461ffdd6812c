"""
Service layer unit tests for reviews app.

Tests cover:
- Visibility rules per scope
- Aggregation (single query, empty scopes, worked example)
- Upsert resolution: idempotence, scope isolation, conflict recovery
- One review per author, song and scope enforced by the database
- Validation before any write
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from django.contrib.auth.models import AnonymousUser
from django.db import IntegrityError, transaction
from django.db.models import Q

from apps.reviews.models import Review
from apps.reviews.scopes import Scope
from apps.reviews.services import (
    resolve_scope,
    resolve_scopes,
    aggregate_song_stats,
    get_album_song_stats,
    submit_review,
    get_review_by_id,
    update_review,
    delete_review,
    get_song_reviews,
    get_user_song_reviews,
)
from apps.reviews.services import review_management
from apps.reviews.exceptions import (
    ReviewNotFoundError,
    SongNotFoundError,
    AlbumNotFoundError,
    InvalidRatingError,
    InvalidContentError,
    ForbiddenScopeError,
    UnauthorizedReviewActionError,
)


# =============================================================================
# Scope Tests
# =============================================================================

class TestScope:
    """Tests for the Scope value type."""

    def test_parse_and_format(self):
        group_id = uuid4()

        assert Scope.parse('public') == Scope.public()
        assert Scope.parse(f'group:{group_id}') == Scope.group(group_id)
        assert str(Scope.user(group_id)) == f'user:{group_id}'

    @pytest.mark.parametrize('text', ['', 'private', 'group:', 'group:not-a-uuid', f'team:{uuid4()}'])
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(ValueError):
            Scope.parse(text)

    def test_group_id_only_for_group_scope(self):
        user_id = uuid4()
        assert Scope.public().group_id is None
        assert Scope.user(user_id).group_id is None
        assert Scope.group(user_id).group_id == user_id


# =============================================================================
# Visibility Tests
# =============================================================================

@pytest.mark.django_db
class TestVisibility:
    """Tests for visibility.py service functions."""

    def test_public_scope_for_anonymous(self, review):
        predicate = resolve_scope(viewer=AnonymousUser(), scope=Scope.public())

        assert list(Review.objects.filter(predicate)) == [review]

    def test_group_scope_member(self, review, group_review, review_member_user, review_group):
        predicate = resolve_scope(viewer=review_member_user, scope=Scope.group(review_group.id))

        assert list(Review.objects.filter(predicate)) == [group_review]

    def test_group_scope_non_member_forbidden(self, review_other_user, review_group):
        with pytest.raises(ForbiddenScopeError):
            resolve_scope(viewer=review_other_user, scope=Scope.group(review_group.id))

    def test_group_scope_anonymous_forbidden(self, review_group):
        with pytest.raises(ForbiddenScopeError):
            resolve_scope(viewer=AnonymousUser(), scope=Scope.group(review_group.id))

    def test_unknown_group_forbidden(self, review_user):
        """Unknown and foreign groups look the same."""
        with pytest.raises(ForbiddenScopeError):
            resolve_scope(viewer=review_user, scope=Scope.group(uuid4()))

    def test_user_scope_hides_foreign_groups(self, review, group_review, review_user, review_other_user, review_member_user):
        """A user's group reviews show only to viewers in that group."""
        scope = Scope.user(review_user.id)

        outsider = Review.objects.filter(resolve_scope(viewer=review_other_user, scope=scope))
        insider = Review.objects.filter(resolve_scope(viewer=review_member_user, scope=scope))

        assert list(outsider) == [review]
        assert set(insider) == {review, group_review}

    def test_resolve_scopes_keeps_allowed_scopes(self, review_other_user, review_group):
        public, group = Scope.public(), Scope.group(review_group.id)

        resolution = resolve_scopes(viewer=review_other_user, scopes=[public, group])

        assert resolution.scopes == [public]
        assert list(resolution.forbidden) == [group]
        assert isinstance(resolution.forbidden[group], ForbiddenScopeError)


# =============================================================================
# Statistics Tests
# =============================================================================

@pytest.mark.django_db
class TestStatistics:
    """Tests for statistics.py service functions."""

    def test_worked_example(self, worked_example, review_group):
        public, group = Scope.public(), Scope.group(review_group.id)

        stats = aggregate_song_stats(
            song_ids=[worked_example.id],
            predicates={public: Q(group__isnull=True), group: Q(group_id=review_group.id)},
        )

        assert stats[worked_example.id][public].display_average == Decimal('7.3')
        assert stats[worked_example.id][public].count == 3
        assert stats[worked_example.id][group].display_average == Decimal('8.1')
        assert stats[worked_example.id][group].count == 2

    def test_empty_scope_is_zero(self, album, review_group):
        """count == 0 implies average == 0, never null."""
        song_ids = list(album.songs.values_list('id', flat=True))

        stats = aggregate_song_stats(
            song_ids=song_ids,
            predicates={Scope.group(review_group.id): Q(group_id=review_group.id)},
        )

        for per_scope in stats.values():
            stat = per_scope[Scope.group(review_group.id)]
            assert stat.count == 0
            assert stat.average == Decimal('0')

    def test_counts_match_filtered_reviews(self, worked_example, review_group):
        predicates = {
            Scope.public(): Q(group__isnull=True),
            Scope.group(review_group.id): Q(group_id=review_group.id),
        }

        stats = aggregate_song_stats(song_ids=[worked_example.id], predicates=predicates)

        for scope, predicate in predicates.items():
            expected = Review.objects.filter(predicate, song=worked_example).count()
            assert stats[worked_example.id][scope].count == expected

    def test_boundary_ratings_count(self, song, review_user, review_other_user):
        Review.objects.create(author=review_user, song=song, rating=Decimal('0.0'))
        Review.objects.create(author=review_other_user, song=song, rating=Decimal('10.0'))

        stats = aggregate_song_stats(song_ids=[song.id], predicates={Scope.public(): Q(group__isnull=True)})

        assert stats[song.id][Scope.public()].count == 2
        assert stats[song.id][Scope.public()].display_average == Decimal('5.0')

    def test_single_query_for_all_scopes(self, worked_example, review_group, review_user, django_assert_num_queries):
        predicates = {
            Scope.public(): Q(group__isnull=True),
            Scope.group(review_group.id): Q(group_id=review_group.id),
            Scope.user(review_user.id): Q(author_id=review_user.id),
        }

        with django_assert_num_queries(1):
            aggregate_song_stats(song_ids=[worked_example.id], predicates=predicates)

    def test_deterministic(self, worked_example):
        predicates = {Scope.public(): Q(group__isnull=True)}

        first = aggregate_song_stats(song_ids=[worked_example.id], predicates=predicates)
        second = aggregate_song_stats(song_ids=[worked_example.id], predicates=predicates)

        assert first == second

    def test_album_song_stats(self, album, worked_example, review_user, review_group):
        data = get_album_song_stats(
            album_id=album.id,
            viewer=review_user,
            scopes=[Scope.public(), Scope.group(review_group.id)],
        )

        public_rows = data['scopes']['public']
        group_rows = data['scopes'][f'group:{review_group.id}']
        assert [row['track_number'] for row in public_rows] == [1, 2, 3]
        assert public_rows[0]['average_rating'] == Decimal('7.3')
        assert group_rows[0]['average_rating'] == Decimal('8.1')
        assert public_rows[1]['review_count'] == 0
        assert public_rows[1]['average_rating'] == Decimal('0.0')
        assert data['forbidden'] == {}

    def test_album_song_stats_defaults_to_public(self, album, worked_example):
        data = get_album_song_stats(album_id=album.id, viewer=AnonymousUser())

        assert list(data['scopes']) == ['public']

    def test_album_song_stats_reports_forbidden(self, album, worked_example, review_other_user, review_group):
        """A non-member gets public numbers and no group numbers at all."""
        data = get_album_song_stats(
            album_id=album.id,
            viewer=review_other_user,
            scopes=[Scope.public(), Scope.group(review_group.id)],
        )

        assert list(data['scopes']) == ['public']
        assert list(data['forbidden']) == [f'group:{review_group.id}']

    def test_album_not_found(self, review_user):
        with pytest.raises(AlbumNotFoundError):
            get_album_song_stats(album_id=uuid4(), viewer=review_user)


# =============================================================================
# Review Upsert Tests
# =============================================================================

@pytest.mark.django_db
class TestSubmitReview:
    """Tests for submit_review."""

    def test_create_review_success(self, review_user, song):
        review, created = submit_review(
            author=review_user,
            song_id=song.id,
            rating='8.5',
            content='Lovely',
        )

        assert created is True
        assert review.rating == Decimal('8.5')
        assert review.content == 'Lovely'
        assert review.group is None

    def test_resubmit_updates_in_place(self, review_user, song):
        """Same scope twice: one row, same id and created_at, latest rating."""
        first, _ = submit_review(author=review_user, song_id=song.id, rating=6)
        second, created = submit_review(author=review_user, song_id=song.id, rating=9)

        assert created is False
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert Review.objects.filter(author=review_user, song=song).count() == 1
        assert Review.objects.get(id=first.id).rating == Decimal('9.0')

    def test_scopes_are_isolated(self, review_user, song, review_group):
        """A group submission never touches the public review."""
        public, _ = submit_review(author=review_user, song_id=song.id, rating=6)
        group, created = submit_review(author=review_user, song_id=song.id, rating=9, group_id=review_group.id)

        assert created is True
        assert group.id != public.id
        assert Review.objects.get(id=public.id).rating == Decimal('6.0')
        assert Review.objects.get(id=group.id).rating == Decimal('9.0')

    def test_content_none_keeps_existing_content(self, review, review_user, song):
        updated, created = submit_review(author=review_user, song_id=song.id, rating=3)

        assert created is False
        assert updated.content == 'Great opener'

    def test_rating_is_quantized(self, review_user, song):
        review, _ = submit_review(author=review_user, song_id=song.id, rating='7.25')
        assert review.rating == Decimal('7.3')

    @pytest.mark.parametrize('rating', ['-0.1', '10.1', 'abc', None, True, 'NaN'])
    def test_invalid_rating_writes_nothing(self, review_user, song, rating):
        with pytest.raises(InvalidRatingError):
            submit_review(author=review_user, song_id=song.id, rating=rating)

        assert not Review.objects.exists()

    def test_boundary_ratings_accepted(self, review_user, review_other_user, song):
        low, _ = submit_review(author=review_user, song_id=song.id, rating=0)
        high, _ = submit_review(author=review_other_user, song_id=song.id, rating=10)

        assert low.rating == Decimal('0.0')
        assert high.rating == Decimal('10.0')

    def test_content_too_long(self, review_user, song):
        with pytest.raises(InvalidContentError):
            submit_review(author=review_user, song_id=song.id, rating=5, content='x' * 501)

        assert not Review.objects.exists()

    def test_content_at_limit(self, review_user, song):
        review, _ = submit_review(author=review_user, song_id=song.id, rating=5, content='x' * 500)
        assert len(review.content) == 500

    def test_song_not_found(self, review_user):
        with pytest.raises(SongNotFoundError):
            submit_review(author=review_user, song_id=uuid4(), rating=5)

    def test_non_member_group_submission_forbidden(self, review_other_user, song, review_group):
        with pytest.raises(ForbiddenScopeError):
            submit_review(author=review_other_user, song_id=song.id, rating=5, group_id=review_group.id)

        assert not Review.objects.exists()

    def test_validation_order_rating_first(self, review_other_user, review_group):
        """Rating is checked before song existence and membership."""
        with pytest.raises(InvalidRatingError):
            submit_review(author=review_other_user, song_id=uuid4(), rating=11, group_id=review_group.id)

    def test_recovers_from_lost_insert_race(self, review, review_user, song, monkeypatch):
        """
        Lookup misses a row another writer just inserted: the insert hits the
        unique constraint and the submission is retried as an update.
        """
        real_lookup = review_management._find_scoped_review
        calls = []

        def racing_lookup(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                return None
            return real_lookup(**kwargs)

        monkeypatch.setattr(review_management, '_find_scoped_review', racing_lookup)

        updated, created = submit_review(author=review_user, song_id=song.id, rating=4, content='Changed my mind')

        assert created is False
        assert updated.id == review.id
        assert len(calls) == 2
        assert Review.objects.filter(author=review_user, song=song).count() == 1
        assert Review.objects.get(id=review.id).rating == Decimal('4.0')


# =============================================================================
# Uniqueness Constraint Tests
# =============================================================================

@pytest.mark.django_db
class TestReviewConstraints:
    """The database itself rejects a second review in the same scope."""

    def test_duplicate_public_review_rejected(self, review, review_user, song):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Review.objects.create(author=review_user, song=song, rating=Decimal('3.0'))

        assert Review.objects.filter(author=review_user, song=song).count() == 1

    def test_duplicate_group_review_rejected(self, group_review, review_user, song, review_group):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Review.objects.create(author=review_user, song=song, group=review_group, rating=Decimal('3.0'))

    def test_public_and_group_reviews_coexist(self, review, group_review, review_user, song, foreign_group):
        Review.objects.create(author=review_user, song=song, group=foreign_group, rating=Decimal('1.0'))

        assert Review.objects.filter(author=review_user, song=song).count() == 3


# =============================================================================
# Review Management Tests
# =============================================================================

@pytest.mark.django_db
class TestReviewManagement:
    """Tests for the by-id operations and review listings."""

    def test_get_review_by_id_success(self, review):
        assert get_review_by_id(review_id=review.id) == review

    def test_get_review_by_id_not_found(self):
        with pytest.raises(ReviewNotFoundError):
            get_review_by_id(review_id=uuid4())

    def test_update_review_success(self, review, review_user):
        updated = update_review(review_id=review.id, user=review_user, rating='9.9', content='Classic')

        assert updated.rating == Decimal('9.9')
        assert updated.content == 'Classic'

    def test_update_review_unauthorized(self, review, review_other_user):
        with pytest.raises(UnauthorizedReviewActionError):
            update_review(review_id=review.id, user=review_other_user, rating=1)

    def test_update_review_invalid_rating(self, review, review_user):
        with pytest.raises(InvalidRatingError):
            update_review(review_id=review.id, user=review_user, rating=42)

        review.refresh_from_db()
        assert review.rating == Decimal('7.5')

    def test_delete_review_success(self, review, review_user):
        delete_review(review_id=review.id, user=review_user)
        assert not Review.objects.filter(id=review.id).exists()

    def test_delete_review_unauthorized(self, review, review_other_user):
        with pytest.raises(UnauthorizedReviewActionError):
            delete_review(review_id=review.id, user=review_other_user)

    def test_delete_review_not_found(self, review_user):
        with pytest.raises(ReviewNotFoundError):
            delete_review(review_id=uuid4(), user=review_user)

    def test_get_song_reviews_visible_only(self, review, group_review, song, review_other_user, review_member_user):
        assert list(get_song_reviews(song_id=song.id, viewer=review_other_user)) == [review]
        assert set(get_song_reviews(song_id=song.id, viewer=review_member_user)) == {review, group_review}

    def test_get_song_reviews_scoped(self, review, group_review, song, review_member_user, review_group):
        reviews = get_song_reviews(song_id=song.id, viewer=review_member_user, scope=Scope.group(review_group.id))
        assert list(reviews) == [group_review]

    def test_get_song_reviews_song_not_found(self, review_user):
        with pytest.raises(SongNotFoundError):
            get_song_reviews(song_id=uuid4(), viewer=review_user)

    def test_get_user_song_reviews_public(self, review, group_review, review_user, song, another_song):
        reviews = get_user_song_reviews(
            user_id=review_user.id,
            song_ids=[song.id, another_song.id],
            viewer=review_user,
        )
        assert list(reviews) == [review]

    def test_get_user_song_reviews_group(self, review, group_review, review_user, review_member_user, song, review_group):
        reviews = get_user_song_reviews(
            user_id=review_user.id,
            song_ids=[song.id],
            viewer=review_member_user,
            group_id=review_group.id,
        )
        assert list(reviews) == [group_review]

    def test_get_user_song_reviews_group_forbidden(self, group_review, review_user, review_other_user, song, review_group):
        with pytest.raises(ForbiddenScopeError):
            get_user_song_reviews(
                user_id=review_user.id,
                song_ids=[song.id],
                viewer=review_other_user,
                group_id=review_group.id,
            )

    def test_get_user_song_reviews_no_songs(self, review_user):
        assert list(get_user_song_reviews(user_id=review_user.id, song_ids=[], viewer=review_user)) == []
