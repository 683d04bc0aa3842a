"""
Tests for EntitlementStore.

Unit tests against a mocked AsyncSession: every mutation is a conditional
UPDATE whose rowcount decides the outcome.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.db.models import Account
from app.exceptions import AccountNotFoundError, DataIntegrityError, InsufficientCreditsError
from app.services.entitlements import EntitlementStore
from tests.conftest import make_result, utc


def create_mock_account(
    email: str = "user@example.com",
    credits: int = 10,
    unlocked_models: list[str] | None = None,
    display_name: str | None = None,
) -> MagicMock:
    """Create a mock Account row."""
    account = MagicMock(spec=Account)
    account.email = email
    account.display_name = display_name
    account.credits = credits
    account.unlocked_models = (
        ["ChatGPT", "DeepSeek", "Gemini"] if unlocked_models is None else unlocked_models
    )
    account.created_at = utc()
    account.updated_at = utc()
    return account


class TestGetOrCreate:
    """Tests for lazy provisioning."""

    async def test_existing_account_returned(self, db_session: AsyncMock):
        account = create_mock_account(credits=7)
        db_session.execute = AsyncMock(return_value=make_result(scalar=account))

        data = await EntitlementStore(db_session).get_or_create("user@example.com")

        assert data.credits == 7
        assert data.unlocked_models == ("ChatGPT", "DeepSeek", "Gemini")
        db_session.commit.assert_not_called()

    async def test_new_account_gets_initial_grant(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))

        data = await EntitlementStore(db_session).get_or_create("new@example.com", "New User")

        assert data.email == "new@example.com"
        assert data.display_name == "New User"
        assert data.credits == 10
        assert set(data.unlocked_models) == {"ChatGPT", "DeepSeek", "Gemini"}
        db_session.add.assert_called_once()
        db_session.commit.assert_awaited_once()

    async def test_creation_race_returns_winner(self, db_session: AsyncMock):
        winner = create_mock_account(email="race@example.com", credits=10)
        db_session.execute = AsyncMock(
            side_effect=[make_result(scalar=None), make_result(scalar=winner)]
        )
        db_session.flush = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("dup")))

        data = await EntitlementStore(db_session).get_or_create("race@example.com")

        assert data.email == "race@example.com"
        db_session.rollback.assert_awaited_once()

    async def test_creation_race_without_winner(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))
        db_session.flush = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("dup")))

        with pytest.raises(DataIntegrityError):
            await EntitlementStore(db_session).get_or_create("ghost@example.com")

    async def test_missing_free_model_backfilled(self, db_session: AsyncMock):
        stale = create_mock_account(unlocked_models=["ChatGPT", "DeepSeek"])
        fresh = create_mock_account(unlocked_models=["ChatGPT", "DeepSeek", "Gemini"])
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalar=stale),
                make_result(rowcount=1),
                make_result(scalar=fresh),
            ]
        )

        data = await EntitlementStore(db_session).get_or_create("user@example.com")

        assert data.has_unlocked("Gemini")
        db_session.commit.assert_awaited_once()


class TestDebit:
    """Tests for the conditional debit."""

    async def test_debit_succeeds(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(return_value=make_result(rowcount=1))

        await EntitlementStore(db_session).debit("user@example.com", 3)

        db_session.flush.assert_awaited_once()
        db_session.commit.assert_not_called()

    async def test_debit_insufficient(self, db_session: AsyncMock):
        account = create_mock_account(credits=1)
        db_session.execute = AsyncMock(
            side_effect=[make_result(rowcount=0), make_result(scalar=account)]
        )

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await EntitlementStore(db_session).debit("user@example.com", 3)

        assert exc_info.value.balance == 1
        assert exc_info.value.required == 3

    async def test_debit_unknown_account(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(
            side_effect=[make_result(rowcount=0), make_result(scalar=None)]
        )

        with pytest.raises(AccountNotFoundError):
            await EntitlementStore(db_session).debit("nobody@example.com", 1)

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_debit_non_positive(self, db_session: AsyncMock, amount: int):
        with pytest.raises(ValueError):
            await EntitlementStore(db_session).debit("user@example.com", amount)
        db_session.execute.assert_not_called()


class TestCredit:
    """Tests for credit additions."""

    async def test_credit_succeeds(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(return_value=make_result(rowcount=1))

        await EntitlementStore(db_session).credit("user@example.com", 50)

        db_session.flush.assert_awaited_once()

    async def test_credit_unknown_account(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(return_value=make_result(rowcount=0))

        with pytest.raises(AccountNotFoundError):
            await EntitlementStore(db_session).credit("nobody@example.com", 50)

    async def test_credit_non_positive(self, db_session: AsyncMock):
        with pytest.raises(ValueError):
            await EntitlementStore(db_session).credit("user@example.com", 0)


class TestGrantUnlock:
    """Tests for idempotent unlocks."""

    async def test_grant_new_model(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(return_value=make_result(rowcount=1))

        assert await EntitlementStore(db_session).grant_unlock("user@example.com", "Claude")
        db_session.flush.assert_awaited_once()

    async def test_grant_already_unlocked(self, db_session: AsyncMock):
        account = create_mock_account(unlocked_models=["ChatGPT", "Claude"])
        db_session.execute = AsyncMock(
            side_effect=[make_result(rowcount=0), make_result(scalar=account)]
        )

        assert not await EntitlementStore(db_session).grant_unlock("user@example.com", "Claude")

    async def test_grant_unknown_account(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(
            side_effect=[make_result(rowcount=0), make_result(scalar=None)]
        )

        with pytest.raises(AccountNotFoundError):
            await EntitlementStore(db_session).grant_unlock("nobody@example.com", "Claude")


class TestGet:
    """Tests for read-only lookup."""

    async def test_get_missing(self, db_session: AsyncMock):
        assert await EntitlementStore(db_session).get("nobody@example.com") is None

    async def test_get_existing(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(
            return_value=make_result(scalar=create_mock_account(credits=3))
        )
        data = await EntitlementStore(db_session).get("user@example.com")
        assert data is not None
        assert data.credits == 3
