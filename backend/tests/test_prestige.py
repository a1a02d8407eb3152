"""Tests for the ledger-backed prestige calculator."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from tabforum.models import Content
from tabforum.repositories.balance_repository import BalanceRepository
from tabforum.services.prestige import LedgerPrestigeCalculator
from tests.conftest import make_content

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _vote(db, content_id, amount):
    BalanceRepository(db).create("content:tabcoin", content_id, amount, "event", "vote")
    db.commit()


def _publish_at(db, content_id, minutes):
    db.execute(
        update(Content.__table__)
        .where(Content.__table__.c.id == content_id)
        .values(published_at=BASE_TIME + timedelta(minutes=minutes))
    )
    db.commit()


class TestGetByContentId:

    @pytest.fixture()
    def prestigious_user(self, db, service, make_user):
        """A user whose earlier content gathered enough tabcoins to earn 2 on publish."""
        user = make_user()
        earlier = service.create(make_content(user.id, title="Earlier", status="published"))
        _vote(db, earlier["id"], 20)
        return user

    def test_publish_credit_by_content(self, service, prestigious_user):
        content = service.create(make_content(prestigious_user.id, title="Later", status="published"))
        assert LedgerPrestigeCalculator(service.db).get_by_content_id(content["id"]) == 2

    def test_publish_credit_by_event(self, service, prestigious_user):
        content = service.create(
            make_content(prestigious_user.id, title="Later", status="published"), event_id="e-pub"
        )
        assert LedgerPrestigeCalculator(service.db).get_by_content_id(content["id"]) == 2

    def test_vote_earnings_left_out(self, db, service, prestigious_user):
        content = service.create(
            make_content(prestigious_user.id, title="Later", status="published"), event_id="e-pub"
        )
        balance = BalanceRepository(db)
        balance.create("content:tabcoin", content["id"], 1, "event", "e-vote")
        balance.create("user:tabcoin", prestigious_user.id, 1, "event", "e-vote")
        db.commit()
        assert LedgerPrestigeCalculator(db).get_by_content_id(content["id"]) == 2

    def test_never_published(self, db, service, make_user):
        content = service.create(make_content(make_user().id))
        assert LedgerPrestigeCalculator(db).get_by_content_id(content["id"]) == 0

    def test_unknown_content(self, db):
        assert LedgerPrestigeCalculator(db).get_by_content_id("unknown") == 0


class TestGetByUserId:

    def test_new_user_earns_nothing(self, db, make_user):
        user = make_user()
        assert LedgerPrestigeCalculator(db).get_by_user_id(user.id, is_root=True) == 0

    def test_positive_total_is_scaled(self, db, service, make_user):
        user = make_user()
        content = service.create(make_content(user.id, status="published"))
        _vote(db, content["id"], 25)

        calculator = LedgerPrestigeCalculator(db, window=20, scale=10, content_default_earnings=1)
        assert calculator.get_by_user_id(user.id, is_root=True) == 2

    def test_negative_total_returned_as_is(self, db, service, make_user):
        user = make_user()
        content = service.create(make_content(user.id, status="published"))
        _vote(db, content["id"], -4)

        calculator = LedgerPrestigeCalculator(db, window=20, scale=10, content_default_earnings=1)
        assert calculator.get_by_user_id(user.id, is_root=True) == -4

    def test_kinds_are_separate(self, db, service, make_user):
        user, other = make_user(), make_user()
        root = service.create(make_content(other.id, status="published"))
        reply = service.create(make_content(user.id, title=None, parent_id=root["id"], status="published"))
        _vote(db, reply["id"], -3)

        calculator = LedgerPrestigeCalculator(db)
        assert calculator.get_by_user_id(user.id, is_root=False) == -3
        assert calculator.get_by_user_id(user.id, is_root=True) == 0

    def test_only_recent_window_counts(self, db, service, make_user):
        user = make_user()
        old = service.create(make_content(user.id, title="Old", status="published"))
        recent = service.create(make_content(user.id, title="Recent", status="published"))
        _publish_at(db, old["id"], 0)
        _publish_at(db, recent["id"], 10)
        _vote(db, old["id"], -10)

        calculator = LedgerPrestigeCalculator(db, window=1, scale=1, content_default_earnings=1)
        assert calculator.get_by_user_id(user.id, is_root=True) == 0

    def test_deleted_contents_ignored(self, db, service, make_user):
        user = make_user()
        content = service.create(make_content(user.id, status="published"))
        _vote(db, content["id"], -5)
        db.execute(
            update(Content.__table__).where(Content.__table__.c.id == content["id"]).values(status="deleted")
        )
        db.commit()

        assert LedgerPrestigeCalculator(db).get_by_user_id(user.id, is_root=True) == 0
