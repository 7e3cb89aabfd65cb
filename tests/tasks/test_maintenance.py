"""Expiry sweep task tests."""

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from sqlmodel import select

from accessgate.config import settings
from accessgate.models import Entitlement, User
from accessgate.services.clock import utcnow
from accessgate.services.grants import grant_access
from accessgate.tasks.maintenance import purge_expired_entitlements
from accessgate.tasks.queue import get_queue_settings


@pytest.fixture
def task_sessions(monkeypatch, session_factory):
    @asynccontextmanager
    async def get_session_context():
        async with session_factory() as session:
            yield session

    monkeypatch.setattr("accessgate.tasks.maintenance.get_session_context", get_session_context)


@pytest.mark.asyncio
async def test_purge_expired_entitlements(task_sessions, session_factory, user: User, other_user: User):
    now = utcnow()
    async with session_factory() as s:
        await grant_access(s, user.id, timedelta(hours=1), now=now - timedelta(hours=2))
        await grant_access(s, other_user.id, timedelta(hours=1), now=now)
        await s.commit()

    preview = await purge_expired_entitlements({}, dry_run=True)
    assert preview["success"] is True
    assert preview["expired_count"] == 1
    assert preview["deleted_count"] == 0

    result = await purge_expired_entitlements({})
    assert result["deleted_count"] == 1

    async with session_factory() as s:
        remaining = (await s.execute(select(Entitlement))).scalars().all()
    assert [e.user_id for e in remaining] == [other_user.id]


def test_sweep_is_scheduled():
    queue_settings = get_queue_settings()
    assert purge_expired_entitlements in queue_settings["functions"]
    [cron_job] = queue_settings["cron_jobs"]
    assert cron_job.function is purge_expired_entitlements
    assert cron_job.cron == settings.expiry_sweep_cron
