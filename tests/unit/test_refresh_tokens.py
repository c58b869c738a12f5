"""
Tests for the refresh token ledger.

Covers issuing, one-shot rotation, reuse detection, expiry and bulk revocation
directly against the database, without the HTTP layer.
"""

import asyncio
from datetime import UTC, timedelta

import jwt
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from booktracker.config import RevokeReason, Settings
from booktracker.core.database import create_session_factory
from booktracker.core.security import utcnow
from booktracker.models.refresh_token import RefreshTokens
from booktracker.models.user import Users
from booktracker.services.refresh_tokens import (
    ClientInfo,
    RefreshTokenLedger,
    RotationStatus,
)

CLIENT = ClientInfo(ip="198.51.100.4", user_agent="pytest")


@pytest.fixture
def ledger(db_session: AsyncSession, settings: Settings) -> RefreshTokenLedger:
    return RefreshTokenLedger(db_session, settings)


async def all_tokens(db_session: AsyncSession) -> list[RefreshTokens]:
    result = await db_session.execute(
        select(RefreshTokens)
        .order_by(RefreshTokens.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.unit
class TestCreateToken:
    async def test_create(self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users):
        issued = await ledger.create_token(test_user.user_id, CLIENT)

        [record] = await all_tokens(db_session)
        assert record.token_id == issued.token_id
        assert record.user_id == test_user.user_id
        assert record.created_by_ip == "198.51.100.4"
        assert record.user_agent == "pytest"
        assert not record.is_revoked and not record.is_expired
        assert record.expires_at == issued.expires_at
        assert timedelta(days=7) - timedelta(seconds=5) < record.expires_at - utcnow() <= timedelta(days=7)

    async def test_bearer_carries_ids_not_the_row(
        self, ledger: RefreshTokenLedger, settings: Settings, test_user: Users
    ):
        issued = await ledger.create_token(test_user.user_id)

        payload = jwt.decode(issued.bearer, settings.JWT_REFRESH_SECRET, algorithms=["HS256"])
        assert payload["sub"] == str(test_user.user_id)
        assert payload["jti"] == issued.token_id
        assert payload["type"] == "refresh"
        assert payload["exp"] == int(issued.expires_at.timestamp())

    async def test_timestamps_read_back_as_utc(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        issued = await ledger.create_token(test_user.user_id)

        [record] = await all_tokens(db_session)
        assert record.created_at.tzinfo is UTC
        assert record.expires_at.tzinfo is UTC
        assert record.expires_at == issued.expires_at
        assert not record.is_expired

    async def test_long_user_agent_is_truncated(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        await ledger.create_token(test_user.user_id, ClientInfo(user_agent="A" * 500))

        [record] = await all_tokens(db_session)
        assert record.user_agent == "A" * 255


@pytest.mark.unit
class TestRotateToken:
    async def test_rotate(self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users):
        issued = await ledger.create_token(test_user.user_id)

        result = await ledger.rotate_token(issued.bearer, CLIENT)

        assert result.status is RotationStatus.ROTATED
        assert result.rotated
        assert result.user_id == test_user.user_id
        assert result.token is not None
        assert result.token.token_id != issued.token_id

        old, new = await all_tokens(db_session)
        assert old.is_revoked
        assert old.revoked_reason == RevokeReason.ROTATED.value
        assert old.revoked_by_ip == "198.51.100.4"
        assert old.revoked_at is not None
        assert old.replaced_by_token == new.token_id
        assert not new.is_revoked and not new.is_expired

    async def test_second_use_is_reuse(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        issued = await ledger.create_token(test_user.user_id)
        first = await ledger.rotate_token(issued.bearer)

        second = await ledger.rotate_token(issued.bearer, CLIENT)

        assert first.rotated
        assert second.status is RotationStatus.REUSED
        assert second.user_id == test_user.user_id
        assert second.token is None
        tokens = await all_tokens(db_session)
        assert all(t.is_revoked for t in tokens)
        assert tokens[1].revoked_reason == RevokeReason.REUSE_DETECTED.value

    async def test_reuse_leaves_other_users_alone(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, make_user
    ):
        victim = await make_user("victim@example.com")
        bystander = await make_user("bystander@example.com")
        stolen = await ledger.create_token(victim.user_id)
        await ledger.create_token(bystander.user_id)
        await ledger.rotate_token(stolen.bearer)

        await ledger.rotate_token(stolen.bearer)

        tokens = await all_tokens(db_session)
        assert [t.is_revoked for t in tokens if t.user_id == bystander.user_id] == [False]

    async def test_unknown_token_id_is_reuse(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        await ledger.create_token(test_user.user_id)
        # Correctly signed but never recorded
        phantom = ledger._sign(test_user.user_id, "phantom", utcnow(), utcnow() + timedelta(days=1))

        result = await ledger.rotate_token(phantom)

        assert result.status is RotationStatus.REUSED
        assert all(t.is_revoked for t in await all_tokens(db_session))

    async def test_token_of_another_user_is_not_found(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, make_user
    ):
        owner = await make_user("owner@example.com")
        other = await make_user("other@example.com")
        issued = await ledger.create_token(owner.user_id)
        mismatched = ledger._sign(other.user_id, issued.token_id, utcnow(), issued.expires_at)

        result = await ledger.rotate_token(mismatched)

        assert result.status is RotationStatus.REUSED
        assert result.user_id == other.user_id
        [record] = await all_tokens(db_session)
        assert not record.is_revoked and not record.is_expired

    async def test_expired_record(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        issued = await ledger.create_token(test_user.user_id)
        [record] = await all_tokens(db_session)
        record.expires_at = utcnow() - timedelta(seconds=1)
        await db_session.commit()

        result = await ledger.rotate_token(issued.bearer)

        assert result.status is RotationStatus.EXPIRED
        assert not result.rotated
        [record] = await all_tokens(db_session)
        assert record.is_revoked
        assert record.revoked_reason == RevokeReason.EXPIRED.value

    async def test_expired_signature(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        await ledger.create_token(test_user.user_id)
        stale = ledger._sign(
            test_user.user_id, "whatever", utcnow() - timedelta(days=8), utcnow() - timedelta(days=1)
        )

        result = await ledger.rotate_token(stale)

        assert result.status is RotationStatus.INVALID
        assert result.reason == "verify-failed"
        assert not any(t.is_revoked for t in await all_tokens(db_session))

    @pytest.mark.parametrize("bearer", ["", "garbage", "a.b.c"])
    async def test_garbage(
        self, bearer: str, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        await ledger.create_token(test_user.user_id)

        result = await ledger.rotate_token(bearer)

        assert result.status is RotationStatus.INVALID
        assert result.user_id is None
        assert not any(t.is_revoked for t in await all_tokens(db_session))

    async def test_missing_claims(self, ledger: RefreshTokenLedger, settings: Settings):
        token = jwt.encode(
            {"sub": "1", "type": "refresh", "exp": utcnow() + timedelta(days=1)},
            settings.JWT_REFRESH_SECRET,
            algorithm="HS256",
        )

        result = await ledger.rotate_token(token)

        assert result.status is RotationStatus.INVALID
        assert result.reason == "missing-claims"


@pytest.mark.unit
class TestConcurrentRotation:
    async def test_only_one_rotation_wins(
        self,
        engine: AsyncEngine,
        settings: Settings,
        ledger: RefreshTokenLedger,
        db_session: AsyncSession,
        test_user: Users,
    ):
        issued = await ledger.create_token(test_user.user_id)
        session_factory = create_session_factory(engine)

        async with session_factory() as first, session_factory() as second:
            results = await asyncio.gather(
                RefreshTokenLedger(first, settings).rotate_token(issued.bearer, CLIENT),
                RefreshTokenLedger(second, settings).rotate_token(issued.bearer, CLIENT),
            )

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["reused", "rotated"]
        [winner] = [r for r in results if r.rotated]
        assert winner.token is not None

        original, successor = await all_tokens(db_session)
        assert original.token_id == issued.token_id
        assert original.revoked_reason == RevokeReason.ROTATED.value
        assert original.replaced_by_token == successor.token_id == winner.token.token_id
        # The losing presentation is treated as theft, so the successor dies too
        assert successor.is_revoked
        assert successor.revoked_reason == RevokeReason.REUSE_DETECTED.value


@pytest.mark.unit
class TestRevocation:
    async def test_revoke_by_user_id(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        for _ in range(3):
            await ledger.create_token(test_user.user_id)

        revoked = await ledger.revoke_by_user_id(test_user.user_id, RevokeReason.USER_LOGOUT, "10.0.0.1")

        assert revoked == 3
        tokens = await all_tokens(db_session)
        assert all(t.revoked_reason == "user-logout" and t.revoked_by_ip == "10.0.0.1" for t in tokens)

    async def test_already_revoked_rows_keep_their_reason(
        self, ledger: RefreshTokenLedger, db_session: AsyncSession, test_user: Users
    ):
        issued = await ledger.create_token(test_user.user_id)
        await ledger.rotate_token(issued.bearer)

        revoked = await ledger.revoke_by_user_id(test_user.user_id, RevokeReason.ADMIN_BAN)

        assert revoked == 1
        old, new = await all_tokens(db_session)
        assert old.revoked_reason == "rotated"
        assert new.revoked_reason == "admin-ban"

    async def test_revoke_with_nothing_active(self, ledger: RefreshTokenLedger, test_user: Users):
        assert await ledger.revoke_by_user_id(test_user.user_id, RevokeReason.USER_LOGOUT) == 0


@pytest.mark.unit
class TestGetUserIdFromToken:
    async def test_valid(self, ledger: RefreshTokenLedger, test_user: Users):
        issued = await ledger.create_token(test_user.user_id)

        assert ledger.get_user_id_from_token(issued.bearer) == test_user.user_id

    async def test_expired_token_still_identifies_owner(
        self, ledger: RefreshTokenLedger, test_user: Users
    ):
        stale = ledger._sign(
            test_user.user_id, "old", utcnow() - timedelta(days=8), utcnow() - timedelta(days=1)
        )

        assert ledger.get_user_id_from_token(stale) == test_user.user_id

    async def test_forged_token(self, ledger: RefreshTokenLedger, test_user: Users):
        forged = jwt.encode(
            {"sub": str(test_user.user_id), "jti": "x", "type": "refresh"},
            "not-the-refresh-secret-at-all",
            algorithm="HS256",
        )

        assert ledger.get_user_id_from_token(forged) is None

    @pytest.mark.parametrize("bearer", [None, "", "garbage"])
    async def test_garbage(self, bearer: str | None, ledger: RefreshTokenLedger):
        assert ledger.get_user_id_from_token(bearer) is None
