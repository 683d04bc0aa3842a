"""
Entitlement Store - Per-user credit balance and unlocked model set.

NO DICTIONARIES - All operations use strongly typed domain models.

Every mutation is a single conditional UPDATE so concurrent requests against
the same account never read-then-write a stale balance.
"""

from sqlalchemy import func, not_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.models import Account, utc_now
from app.exceptions import (
    AccountNotFoundError,
    DataIntegrityError,
    InsufficientCreditsError,
)
from app.models.domain import AccountData
from app.observability.metrics import metrics
from app.services.catalog import FREE_MODELS

logger = get_logger(__name__)


class EntitlementStore:
    """
    Account entitlements backed by the accounts table.

    get_or_create commits its own writes (it runs first in every flow).
    debit, credit and grant_unlock only flush: the calling service decides
    when the surrounding transaction commits.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize entitlement store with database session."""
        self.session = session

    async def get_or_create(
        self, identity: str, display_name: str | None = None
    ) -> AccountData:
        """
        Get existing account or lazily provision a new one.

        New accounts start with the initial credit grant and the free model
        set. Existing accounts missing a configured free model (the catalog can
        grow) have it added before the snapshot is returned.
        """
        account = await self._find_account(identity)

        if account is None:
            account = await self._create_account(identity, display_name)
        else:
            missing = [m for m in FREE_MODELS if m not in (account.unlocked_models or [])]
            if missing:
                for model in missing:
                    await self._add_model(identity, model)
                await self.session.commit()
                logger.info(
                    "free_models_backfilled",
                    identity=identity,
                    models=missing,
                )
                account = await self._find_account(identity)
                if account is None:
                    raise DataIntegrityError(f"Account {identity} disappeared during backfill")

        return self._account_to_domain(account)

    async def get(self, identity: str) -> AccountData | None:
        """Get account snapshot, or None if the identity was never provisioned."""
        account = await self._find_account(identity)
        if account is None:
            return None
        return self._account_to_domain(account)

    async def debit(self, identity: str, amount: int) -> None:
        """
        Deduct credits atomically: credits = credits - amount WHERE credits >= amount.

        Raises:
            AccountNotFoundError: Account doesn't exist
            InsufficientCreditsError: Balance dropped below amount (concurrent spend)
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive: {amount}")

        stmt = (
            update(Account)
            .where(Account.email == identity, Account.credits >= amount)
            .values(credits=Account.credits - amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            account = await self._find_account(identity)
            if account is None:
                raise AccountNotFoundError(identity)
            logger.warning(
                "debit_rejected_insufficient_credits",
                identity=identity,
                balance=account.credits,
                required=amount,
            )
            raise InsufficientCreditsError(account.credits, amount)

        await self.session.flush()
        metrics.credits_debited_total.inc(amount)
        logger.info("credits_debited", identity=identity, amount=amount)

    async def credit(self, identity: str, amount: int) -> None:
        """
        Add credits atomically.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive: {amount}")

        stmt = (
            update(Account)
            .where(Account.email == identity)
            .values(credits=Account.credits + amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise AccountNotFoundError(identity)

        await self.session.flush()
        logger.info("credits_added", identity=identity, amount=amount)

    async def grant_unlock(self, identity: str, model: str) -> bool:
        """
        Add a model to the unlocked set (idempotent).

        Returns:
            True if the model was added, False if it was already unlocked

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        added = await self._add_model(identity, model)
        if not added:
            if await self._find_account(identity) is None:
                raise AccountNotFoundError(identity)
            return False

        await self.session.flush()
        logger.info("model_unlocked", identity=identity, model=model)
        return True

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _find_account(self, identity: str) -> Account | None:
        """Find account by identity. Always reads current state (no caching)."""
        stmt = (
            select(Account)
            .where(Account.email == identity)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _create_account(self, identity: str, display_name: str | None) -> Account:
        new_account = Account(
            email=identity,
            display_name=display_name,
            credits=settings.initial_credits,
            unlocked_models=list(FREE_MODELS),
        )
        self.session.add(new_account)

        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as e:
            # Race condition - account created by another request
            logger.warning("account_creation_race", identity=identity, error=str(e))
            await self.session.rollback()
            account = await self._find_account(identity)
            if account is None:
                raise DataIntegrityError(f"Account creation failed: {e}") from e
            return account

        metrics.accounts_created_total.inc()
        logger.info(
            "account_created",
            identity=identity,
            credits=settings.initial_credits,
        )
        return new_account

    async def _add_model(self, identity: str, model: str) -> bool:
        """Append model to unlocked_models unless already present. Returns rows changed."""
        stmt = (
            update(Account)
            .where(Account.email == identity, not_(Account.unlocked_models.any(model)))
            .values(
                unlocked_models=func.array_append(Account.unlocked_models, model),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    def _account_to_domain(self, account: Account) -> AccountData:
        """Convert ORM account to domain model."""
        return AccountData(
            email=account.email,
            display_name=account.display_name,
            credits=account.credits,
            unlocked_models=tuple(account.unlocked_models or ()),
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
