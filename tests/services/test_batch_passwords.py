"""Batch access password registry tests."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from accessgate.models import BatchAccessPassword, Enrollment, User
from accessgate.services.batch_passwords import (
    PASSWORD_ALPHABET,
    create_password,
    delete_password,
    generate_password,
    list_passwords,
    redeem_password,
    set_password_active,
)
from accessgate.services.errors import Exhausted, Expired, InvalidPassword, StorageFailure
from accessgate.services.grants import RedemptionResult, get_active_entitlement
from tests.conftest import T0, create_user


async def make_password(session_factory, **kwargs) -> BatchAccessPassword:
    kwargs.setdefault("now", T0)
    async with session_factory() as s:
        record = await create_password(s, kwargs.pop("batch_id", "batch-7"), **kwargs)
        await s.commit()
    return record


async def load_password(session_factory, password_id: str) -> BatchAccessPassword:
    async with session_factory() as s:
        return await s.get(BatchAccessPassword, password_id)


def test_generated_passwords_use_unambiguous_alphabet():
    password = generate_password()
    assert len(password) == 8
    assert set(password) <= set(PASSWORD_ALPHABET)
    assert not set("01OI") & set(PASSWORD_ALPHABET)


@pytest.mark.asyncio
async def test_create_password_defaults(session_factory):
    record = await make_password(session_factory, valid_hours=48)

    assert len(record.password) == 8
    assert record.max_uses == 100
    assert record.current_uses == 0
    assert record.is_active is True
    # The password stays redeemable for as long as the grants it hands out
    assert record.expires_at == T0 + timedelta(hours=48)


@pytest.mark.asyncio
async def test_create_password_validation(session):
    with pytest.raises(ValueError):
        await create_password(session, "b", valid_hours=0)
    with pytest.raises(ValueError):
        await create_password(session, "b", max_uses=0)
    with pytest.raises(ValueError):
        await create_password(session, "b", password="   ")
    with pytest.raises(ValueError):
        await create_password(session, "b", password="x" * 65)
    with pytest.raises(ValueError):
        await create_password(session, "b", ttl=timedelta(0))


@pytest.mark.asyncio
async def test_redeem_grants_and_enrolls(session_factory, user: User):
    record = await make_password(
        session_factory, password="SPRING24", valid_hours=6, ttl=timedelta(days=7)
    )
    redeemed_at = T0 + timedelta(hours=1)

    async with session_factory() as s:
        result = await redeem_password(s, " SPRING24 ", user.id, now=redeemed_at)

    assert result.batch_id == "batch-7"
    assert result.entitlement.expires_at == redeemed_at + timedelta(hours=6)
    assert result.entitlement.source == "password"

    stored = await load_password(session_factory, record.id)
    assert stored.current_uses == 1

    async with session_factory() as s:
        enrollments = (await s.execute(select(Enrollment))).scalars().all()
    assert len(enrollments) == 1
    assert enrollments[0].user_id == user.id
    assert enrollments[0].batch_id == "batch-7"
    assert enrollments[0].enrolled_via_password_id == record.id


@pytest.mark.asyncio
async def test_repeat_redemption_spends_a_use_but_enrolls_once(session_factory, user: User):
    record = await make_password(session_factory, password="AGAIN", max_uses=5)

    for minutes in (1, 2):
        async with session_factory() as s:
            await redeem_password(s, "AGAIN", user.id, now=T0 + timedelta(minutes=minutes))

    stored = await load_password(session_factory, record.id)
    assert stored.current_uses == 2
    async with session_factory() as s:
        enrollments = (await s.execute(select(Enrollment))).scalars().all()
    assert len(enrollments) == 1


@pytest.mark.asyncio
async def test_concurrent_redemptions_respect_max_uses(session_factory):
    record = await make_password(session_factory, password="RUSH", max_uses=3)
    users = [await create_user(session_factory, f"student{i}@example.com") for i in range(6)]

    async def attempt(u: User):
        async with session_factory() as s:
            return await redeem_password(s, "RUSH", u.id, now=T0 + timedelta(minutes=1))

    results = await asyncio.gather(*(attempt(u) for u in users), return_exceptions=True)

    successes = [r for r in results if isinstance(r, RedemptionResult)]
    exhausted = [r for r in results if isinstance(r, Exhausted)]
    assert len(successes) == 3
    assert len(exhausted) == 3

    stored = await load_password(session_factory, record.id)
    assert stored.current_uses == 3


@pytest.mark.asyncio
async def test_last_use_goes_to_exactly_one_caller(session_factory, user: User, other_user: User):
    await make_password(session_factory, password="SOLO", max_uses=1)

    async def attempt(u: User):
        async with session_factory() as s:
            return await redeem_password(s, "SOLO", u.id, now=T0)

    results = await asyncio.gather(attempt(user), attempt(other_user), return_exceptions=True)
    assert sum(isinstance(r, RedemptionResult) for r in results) == 1
    assert sum(isinstance(r, Exhausted) for r in results) == 1


@pytest.mark.asyncio
async def test_expired_password(session_factory, user: User):
    await make_password(session_factory, password="OLD", valid_hours=1)

    async with session_factory() as s:
        with pytest.raises(Expired):
            await redeem_password(s, "OLD", user.id, now=T0 + timedelta(hours=1))


@pytest.mark.asyncio
async def test_unknown_and_inactive_passwords(session_factory, user: User):
    record = await make_password(session_factory, password="PAUSED")

    async with session_factory() as s:
        with pytest.raises(InvalidPassword):
            await redeem_password(s, "NOPE", user.id, now=T0)
    async with session_factory() as s:
        with pytest.raises(InvalidPassword):
            await redeem_password(s, "   ", user.id, now=T0)

    async with session_factory() as s:
        await set_password_active(s, record.id, False)
        await s.commit()
    async with session_factory() as s:
        with pytest.raises(InvalidPassword):
            await redeem_password(s, "PAUSED", user.id, now=T0)


@pytest.mark.asyncio
async def test_newest_active_password_wins(session_factory, user: User):
    await make_password(session_factory, password="REUSED", batch_id="old-batch", max_uses=1)
    await make_password(
        session_factory, password="REUSED", batch_id="new-batch", now=T0 + timedelta(minutes=5)
    )

    async with session_factory() as s:
        result = await redeem_password(s, "REUSED", user.id, now=T0 + timedelta(minutes=10))
    assert result.batch_id == "new-batch"


@pytest.mark.asyncio
async def test_expired_newer_password_does_not_hide_older_one(session_factory, user: User):
    await make_password(session_factory, password="SAME", batch_id="b1", valid_hours=24)
    await make_password(
        session_factory,
        password="SAME",
        batch_id="b2",
        ttl=timedelta(minutes=10),
        now=T0 + timedelta(minutes=1),
    )

    async with session_factory() as s:
        result = await redeem_password(s, "SAME", user.id, now=T0 + timedelta(minutes=30))
    assert result.batch_id == "b1"


@pytest.mark.asyncio
async def test_exhausted_newer_password_does_not_hide_older_one(
    session_factory, user: User, other_user: User
):
    older = await make_password(session_factory, password="SHARED", batch_id="b1", max_uses=5)
    await make_password(
        session_factory,
        password="SHARED",
        batch_id="b2",
        max_uses=1,
        now=T0 + timedelta(minutes=1),
    )

    async with session_factory() as s:
        first = await redeem_password(s, "SHARED", other_user.id, now=T0 + timedelta(minutes=2))
    async with session_factory() as s:
        second = await redeem_password(s, "SHARED", user.id, now=T0 + timedelta(minutes=3))

    assert first.batch_id == "b2"
    assert second.batch_id == "b1"
    assert (await load_password(session_factory, older.id)).current_uses == 1


@pytest.mark.asyncio
async def test_shared_password_fails_with_newest_failure(session_factory, user: User):
    await make_password(session_factory, password="GONE", batch_id="b1", max_uses=1)
    async with session_factory() as s:
        await redeem_password(s, "GONE", user.id, now=T0 + timedelta(minutes=1))
    await make_password(
        session_factory,
        password="GONE",
        batch_id="b2",
        ttl=timedelta(minutes=5),
        now=T0 + timedelta(minutes=2),
    )

    async with session_factory() as s:
        with pytest.raises(Expired):
            await redeem_password(s, "GONE", user.id, now=T0 + timedelta(hours=1))


@pytest.mark.asyncio
async def test_two_passwords_for_one_batch_enroll_once(session_factory, user: User):
    first = await make_password(session_factory, password="FIRST", batch_id="b1")
    await make_password(session_factory, password="SECOND", batch_id="b1")

    async with session_factory() as s:
        await redeem_password(s, "FIRST", user.id, now=T0 + timedelta(minutes=1))
    async with session_factory() as s:
        result = await redeem_password(s, "SECOND", user.id, now=T0 + timedelta(minutes=2))

    assert result.batch_id == "b1"
    async with session_factory() as s:
        enrollments = (await s.execute(select(Enrollment))).scalars().all()
    assert len(enrollments) == 1
    assert enrollments[0].enrolled_via_password_id == first.id


@pytest.mark.asyncio
async def test_storage_failure_keeps_use_count(session_factory, user: User):
    record = await make_password(session_factory, password="FRAGILE")

    failing_grant = AsyncMock(side_effect=SQLAlchemyError("connection reset"))
    with patch("accessgate.services.batch_passwords.grant_access", failing_grant):
        async with session_factory() as s:
            with pytest.raises(StorageFailure):
                await redeem_password(s, "FRAGILE", user.id, now=T0)

    stored = await load_password(session_factory, record.id)
    assert stored.current_uses == 0
    async with session_factory() as s:
        assert await get_active_entitlement(s, user.id, T0) is None
        assert (await s.execute(select(Enrollment))).scalars().all() == []


@pytest.mark.asyncio
async def test_list_and_delete(session_factory, user: User):
    first = await make_password(session_factory, batch_id="a")
    await make_password(session_factory, batch_id="b")

    async with session_factory() as s:
        assert len(await list_passwords(s)) == 2
        assert [r.id for r in await list_passwords(s, "a")] == [first.id]

    async with session_factory() as s:
        await redeem_password(s, first.password, user.id, now=T0)

    async with session_factory() as s:
        assert await delete_password(s, first.id) is True
        await s.commit()
    async with session_factory() as s:
        assert await delete_password(s, first.id) is False
        # Grants handed out earlier survive the password
        assert await get_active_entitlement(s, user.id, T0) is not None
