"""Verification token ledger tests."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from accessgate.config import settings
from accessgate.models import Entitlement, User, VerificationToken
from accessgate.services.errors import AlreadyUsed, Expired, NotFound, StorageFailure
from accessgate.services.grants import RedemptionResult, get_active_entitlement
from accessgate.services.verification import (
    build_destination_url,
    get_pending_code,
    is_well_formed_token,
    issue_token,
    list_tokens,
    redeem_code,
    redeem_token,
)
from tests.conftest import T0


async def issue(session_factory, user: User, **kwargs) -> VerificationToken:
    async with session_factory() as s:
        verification = await issue_token(s, user.id, now=T0, **kwargs)
        await s.commit()
    return verification


async def load_token(session_factory, token: str) -> VerificationToken:
    async with session_factory() as s:
        result = await s.execute(select(VerificationToken).where(VerificationToken.token == token))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_issue_token(session_factory, user: User):
    verification = await issue(session_factory, user)

    assert verification.user_id == user.id
    assert len(verification.token) == 64
    assert is_well_formed_token(verification.token)
    assert verification.code is not None and len(verification.code) == 6
    assert verification.used is False
    assert verification.status == "pending"
    assert verification.expires_at == T0 + timedelta(minutes=15)
    assert verification.code_expires_at == T0 + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_code_window_never_outlives_token(session_factory, user: User):
    verification = await issue(
        session_factory, user, ttl=timedelta(minutes=5), code_ttl=timedelta(minutes=30)
    )
    assert verification.code_expires_at == verification.expires_at


@pytest.mark.asyncio
async def test_redeem_grants_access(session_factory, user: User):
    verification = await issue(session_factory, user)
    redeemed_at = T0 + timedelta(minutes=5)

    async with session_factory() as s:
        result = await redeem_token(s, verification.token, now=redeemed_at)

    assert isinstance(result, RedemptionResult)
    assert result.user_id == user.id
    assert result.entitlement.expires_at == redeemed_at + timedelta(hours=24)
    assert result.entitlement.source == "verification"

    stored = await load_token(session_factory, verification.token)
    assert stored.used is True
    assert stored.status == "verified"
    assert stored.verified_at == redeemed_at


@pytest.mark.asyncio
async def test_redeem_twice_is_rejected(session_factory, user: User):
    verification = await issue(session_factory, user)

    async with session_factory() as s:
        await redeem_token(s, verification.token, now=T0 + timedelta(minutes=1))
    async with session_factory() as s:
        with pytest.raises(AlreadyUsed):
            await redeem_token(s, verification.token, now=T0 + timedelta(minutes=2))


@pytest.mark.asyncio
async def test_concurrent_redemptions_grant_once(session_factory, user: User):
    verification = await issue(session_factory, user)

    async def attempt():
        async with session_factory() as s:
            return await redeem_token(s, verification.token, now=T0 + timedelta(minutes=1))

    results = await asyncio.gather(attempt(), attempt(), attempt(), return_exceptions=True)

    successes = [r for r in results if isinstance(r, RedemptionResult)]
    failures = [r for r in results if isinstance(r, AlreadyUsed)]
    assert len(successes) == 1
    assert len(failures) == 2


@pytest.mark.asyncio
async def test_expired_token_is_rejected(session_factory, user: User):
    verification = await issue(session_factory, user)

    async with session_factory() as s:
        with pytest.raises(Expired):
            await redeem_token(s, verification.token, now=T0 + timedelta(minutes=16))
    # Exactly at the expiry instant is already too late
    async with session_factory() as s:
        with pytest.raises(Expired):
            await redeem_token(s, verification.token, now=T0 + timedelta(minutes=15))

    stored = await load_token(session_factory, verification.token)
    assert stored.used is False


@pytest.mark.asyncio
async def test_unknown_token(session):
    with pytest.raises(NotFound):
        await redeem_token(session, "does-not-exist", now=T0)


@pytest.mark.asyncio
async def test_storage_failure_rolls_back(session_factory, user: User):
    verification = await issue(session_factory, user)

    failing_grant = AsyncMock(side_effect=SQLAlchemyError("disk full"))
    with patch("accessgate.services.verification.grant_access", failing_grant):
        async with session_factory() as s:
            with pytest.raises(StorageFailure):
                await redeem_token(s, verification.token, now=T0 + timedelta(minutes=1))

    # Token is still spendable and no grant was written
    stored = await load_token(session_factory, verification.token)
    assert stored.used is False
    async with session_factory() as s:
        assert await get_active_entitlement(s, user.id, T0) is None

    async with session_factory() as s:
        result = await redeem_token(s, verification.token, now=T0 + timedelta(minutes=2))
    assert result.user_id == user.id


@pytest.mark.asyncio
async def test_redeem_code(session_factory, user: User):
    verification = await issue(session_factory, user)

    async with session_factory() as s:
        result = await redeem_code(s, user.id, verification.code, now=T0 + timedelta(minutes=3))
    assert result.entitlement.expires_at == T0 + timedelta(minutes=3, hours=24)

    # The code and the token are the same credential
    async with session_factory() as s:
        with pytest.raises(AlreadyUsed):
            await redeem_token(s, verification.token, now=T0 + timedelta(minutes=4))


@pytest.mark.asyncio
async def test_code_expires_before_token(session_factory, user: User):
    verification = await issue(session_factory, user)

    async with session_factory() as s:
        with pytest.raises(Expired):
            await redeem_code(s, user.id, verification.code, now=T0 + timedelta(minutes=11))

    # The token itself is still good for the callback
    async with session_factory() as s:
        result = await redeem_token(s, verification.token, now=T0 + timedelta(minutes=11))
    assert result.user_id == user.id


@pytest.mark.asyncio
async def test_code_is_bound_to_its_user(session_factory, user: User, other_user: User):
    verification = await issue(session_factory, user)
    wrong_code = f"{(int(verification.code) + 1) % 10**6:06d}"

    async with session_factory() as s:
        with pytest.raises(NotFound):
            await redeem_code(s, other_user.id, verification.code, now=T0)
    async with session_factory() as s:
        with pytest.raises(NotFound):
            await redeem_code(s, user.id, wrong_code, now=T0)
    async with session_factory() as s:
        with pytest.raises(NotFound):
            await redeem_code(s, user.id, "12ab56", now=T0)


@pytest.mark.asyncio
async def test_get_pending_code(session_factory, user: User):
    verification = await issue(session_factory, user)

    async with session_factory() as s:
        pending = await get_pending_code(s, verification.token, now=T0 + timedelta(minutes=1))
        assert pending.code == verification.code

        with pytest.raises(Expired):
            await get_pending_code(s, verification.token, now=T0 + timedelta(minutes=10))
        with pytest.raises(NotFound):
            await get_pending_code(s, "missing", now=T0)

    async with session_factory() as s:
        await redeem_token(s, verification.token, now=T0 + timedelta(minutes=1))
    async with session_factory() as s:
        with pytest.raises(AlreadyUsed):
            await get_pending_code(s, verification.token, now=T0 + timedelta(minutes=2))


@pytest.mark.asyncio
async def test_list_tokens(session_factory, user: User, other_user: User):
    for _ in range(3):
        await issue(session_factory, user)
    await issue(session_factory, other_user)

    async with session_factory() as s:
        items, total = await list_tokens(s, user_id=user.id, limit=2)
        assert total == 3
        assert len(items) == 2
        assert all(t.user_id == user.id for t in items)

        _, everyone = await list_tokens(s)
        assert everyone == 4


def test_well_formed_token():
    assert is_well_formed_token("a" * 64)
    assert is_well_formed_token("abc_DEF-123")
    assert not is_well_formed_token("")
    assert not is_well_formed_token(None)
    assert not is_well_formed_token("has space")
    assert not is_well_formed_token("x" * 256)
    assert not is_well_formed_token("<script>")


def test_destination_url_follows_delivery_mode(monkeypatch):
    monkeypatch.setattr(settings, "api_url", "https://api.example.com/")

    monkeypatch.setattr(settings, "verification_delivery", "callback")
    assert build_destination_url("abc") == "https://api.example.com/api/verify-callback?token=abc"

    monkeypatch.setattr(settings, "verification_delivery", "code")
    assert build_destination_url("abc") == "https://api.example.com/api/verification-code?token=abc"


@pytest.mark.asyncio
async def test_redemption_does_not_touch_other_users(session_factory, user: User, other_user: User):
    verification = await issue(session_factory, user)
    async with session_factory() as s:
        await redeem_token(s, verification.token, now=T0)

    async with session_factory() as s:
        rows = (await s.execute(select(Entitlement))).scalars().all()
    assert [e.user_id for e in rows] == [user.id]
