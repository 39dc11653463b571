"""
Tests for notification_service — payload building and in-app dispatch.
"""

import json

import pytest
from sqlalchemy import select

from challenge_league.database.models import Notification, NotificationType
from challenge_league.services import notification_service


class TestCreateNotificationData:
    """Tests for create_notification_data()."""

    def test_new_prompt_payload(self):
        payload = notification_service.create_notification_data(
            NotificationType.NEW_PROMPT_AVAILABLE,
            prompt_text="Shoot a sunrise",
            league_name="Early Birds",
            league_id=12,
            prompt_id=34,
        )
        assert payload == {
            "type": "new_prompt_available",
            "title": "A New Challenge Is Available!",
            "message": "Early Birds: Shoot a sunrise",
            "link_url": "/app/league/12",
            "data": {"tag": "new-prompt", "league_id": 12, "prompt_id": 34},
        }

    @pytest.mark.parametrize(
        "type,title",
        [
            (NotificationType.VOTING_AVAILABLE, "Voting is Open!"),
            (NotificationType.SUBMISSION_DEADLINE_24H, "24 Hours Left to Submit!"),
            (NotificationType.VOTING_DEADLINE_24H, "24 Hours Left to Vote!"),
            (NotificationType.SUBMISSION_DEADLINE_2H, "2 Hours Left to Submit!"),
            (NotificationType.VOTING_DEADLINE_2H, "2 Hours Left to Vote!"),
        ],
    )
    def test_titles(self, type, title):
        payload = notification_service.create_notification_data(type, prompt_text="x")
        assert payload["title"] == title
        assert payload["type"] == type.value

    def test_accepts_string_type(self):
        payload = notification_service.create_notification_data("voting_available")
        assert payload["type"] == "voting_available"

    def test_fallback_message_and_link(self):
        payload = notification_service.create_notification_data(NotificationType.VOTING_AVAILABLE)
        assert payload["message"] == "New activity in your league!"
        assert payload["link_url"] == "/"
        assert payload["data"] == {"tag": "voting-open"}

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            notification_service.create_notification_data("not_a_type")


class TestDispatch:
    """Tests for notify_users() and notify_league()."""

    @pytest.mark.asyncio
    async def test_notify_users_creates_rows(self, db_session, factory):
        a, b = await factory.user(), await factory.user()
        await db_session.commit()
        payload = notification_service.create_notification_data(
            NotificationType.VOTING_AVAILABLE, prompt_text="Rainy day", league_id=5, prompt_id=9
        )

        result = await notification_service.notify_users(db_session, [a.id, b.id, a.id], payload)

        assert result == {"sent": 2, "failed": 0}
        rows = (await db_session.execute(select(Notification).order_by(Notification.user_id))).scalars().all()
        assert [row.user_id for row in rows] == [a.id, b.id]
        assert rows[0].title == "Voting is Open!"
        assert rows[0].is_read is False
        assert json.loads(rows[0].data) == {"tag": "voting-open", "league_id": 5, "prompt_id": 9}

    @pytest.mark.asyncio
    async def test_notify_users_empty(self, db_session):
        payload = notification_service.create_notification_data(NotificationType.VOTING_AVAILABLE)
        assert await notification_service.notify_users(db_session, [], payload) == {"sent": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_write_failure_reported_not_raised(self, db_session, factory, monkeypatch):
        user = await factory.user()
        await db_session.commit()

        async def failing_flush(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(db_session, "flush", failing_flush)
        payload = notification_service.create_notification_data(NotificationType.VOTING_AVAILABLE)

        result = await notification_service.notify_users(db_session, [user.id], payload)

        assert result == {"sent": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_notify_league_reaches_active_members(self, db_session, factory):
        owner = await factory.user()
        league = await factory.league(owner=owner, members=2)
        former = await factory.user()
        await factory.member(league, former, is_active=False)
        await db_session.commit()
        payload = notification_service.create_notification_data(
            NotificationType.NEW_PROMPT_AVAILABLE, league_id=league.id
        )

        result = await notification_service.notify_league(db_session, league.id, payload)

        assert result == {"sent": 3, "failed": 0}
        user_ids = (await db_session.execute(select(Notification.user_id))).scalars().all()
        assert former.id not in user_ids

    @pytest.mark.asyncio
    async def test_notify_league_excludes_user(self, db_session, factory):
        owner = await factory.user()
        league = await factory.league(owner=owner, members=1)
        await db_session.commit()
        payload = notification_service.create_notification_data(NotificationType.VOTING_AVAILABLE)

        result = await notification_service.notify_league(
            db_session, league.id, payload, exclude_user_id=owner.id
        )

        assert result == {"sent": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_notify_league_without_members(self, db_session):
        payload = notification_service.create_notification_data(NotificationType.VOTING_AVAILABLE)
        assert await notification_service.notify_league(db_session, 999, payload) == {"sent": 0, "failed": 0}
