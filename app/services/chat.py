"""
Chat Service - Metered fan-out of one prompt to several models.

NO DICTIONARIES - All operations use strongly typed domain models.

Request lifecycle:
1. Entitlement checks (credits first, then locked models) before any spend
2. User turn recorded and committed
3. Concurrent fan-out through the provider gateway (failures are content)
4. Assistant turns and the debit committed together
"""

from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.models import utc_now
from app.exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    InvalidInputError,
    LockedModelError,
    SessionNotFoundError,
)
from app.models.api import ChatRole
from app.models.domain import (
    ChatMessage,
    ChatOutcome,
    ChatTurnData,
    ProviderReply,
    SessionSummary,
)
from app.observability.metrics import metrics
from app.services.catalog import CREDITS_PER_MODEL_CALL
from app.services.entitlements import EntitlementStore
from app.services.history import HistoryStore
from app.services.provider_gateway import ProviderGateway, is_error_reply

logger = get_logger(__name__)

# Model label stored on user turns
USER_TURN_MODEL = "user"


def new_session_id() -> str:
    """Allocate an opaque chat session id."""
    return f"session_{uuid4().hex}"


def dedupe_models(models: list[str]) -> list[str]:
    """Collapse repeated model ids, keeping first-occurrence order."""
    return list(dict.fromkeys(models))


def build_context(
    turns: list[ChatTurnData], models: list[str], max_exchanges: int
) -> dict[str, list[ChatMessage]]:
    """
    Build per-model conversation context from a session's turns.

    Each model sees only completed exchanges it answered itself (the user
    prompt followed by that model's reply), skipping error replies, capped
    to the newest max_exchanges.
    """
    exchanges: dict[str, list[tuple[str, str]]] = {model: [] for model in models}
    current_prompt: str | None = None

    for turn in turns:
        if turn.role == ChatRole.USER:
            current_prompt = turn.content
            continue
        if current_prompt is None or turn.model not in exchanges:
            continue
        if is_error_reply(turn.content):
            continue
        exchanges[turn.model].append((current_prompt, turn.content))

    context: dict[str, list[ChatMessage]] = {}
    for model, pairs in exchanges.items():
        recent = pairs[-max_exchanges:] if max_exchanges > 0 else []
        messages: list[ChatMessage] = []
        for prompt, reply in recent:
            messages.append(ChatMessage(role=ChatRole.USER, content=prompt))
            messages.append(ChatMessage(role=ChatRole.ASSISTANT, content=reply))
        context[model] = messages
    return context


class ChatService:
    """
    Orchestrates chat requests against entitlements, providers and history.

    The service owns the transaction boundary; stores only flush.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: ProviderGateway,
        entitlements: EntitlementStore | None = None,
        history: HistoryStore | None = None,
    ) -> None:
        """Initialize chat service with database session and provider gateway."""
        self.session = session
        self.gateway = gateway
        self.entitlements = entitlements or EntitlementStore(session)
        self.history = history or HistoryStore(session)

    async def handle_chat(
        self,
        identity: str,
        prompt: str,
        models: list[str],
        session_id: str | None = None,
    ) -> ChatOutcome:
        """
        Authorize, dispatch, record and settle one chat request.

        Raises:
            InvalidInputError: Empty prompt or no models
            InsufficientCreditsError: Balance below one credit per model
            LockedModelError: Some requested models are not unlocked
        """
        if not prompt or not prompt.strip():
            raise InvalidInputError("Prompt is required")
        requested = dedupe_models(models)
        if not requested:
            raise InvalidInputError("At least one model must be selected")

        account = await self.entitlements.get_or_create(identity)
        credits_required = len(requested) * CREDITS_PER_MODEL_CALL

        if account.credits < credits_required:
            metrics.record_chat_request("insufficient_credits")
            logger.info(
                "chat_rejected_insufficient_credits",
                identity=identity,
                balance=account.credits,
                required=credits_required,
            )
            raise InsufficientCreditsError(account.credits, credits_required)

        locked = [model for model in requested if not account.has_unlocked(model)]
        if locked:
            metrics.record_chat_request("locked_models")
            logger.info("chat_rejected_locked_models", identity=identity, locked_models=locked)
            raise LockedModelError(locked)

        session_id = session_id or new_session_id()

        prior_turns = await self.history.session_turns(identity, session_id)
        context = build_context(prior_turns, requested, settings.history_context_turns)

        await self.history.append(
            ChatTurnData(
                owner=identity,
                session_id=session_id,
                role=ChatRole.USER,
                model=USER_TURN_MODEL,
                content=prompt,
                timestamp=utc_now(),
            )
        )
        await self.session.commit()

        replies = await self.gateway.fan_out(requested, prompt, context)

        await self._settle(identity, session_id, replies, credits_required)

        refreshed = await self.entitlements.get(identity)
        if refreshed is None:
            raise AccountNotFoundError(identity)

        metrics.record_chat_request("success", width=len(requested))
        logger.info(
            "chat_request_completed",
            identity=identity,
            session_id=session_id,
            models=requested,
            credits_spent=credits_required,
            credits_remaining=refreshed.credits,
            failed_models=[r.model for r in replies if is_error_reply(r.response)],
        )
        return ChatOutcome(responses=replies, session_id=session_id, account=refreshed)

    async def get_history(
        self, identity: str, session_id: str | None = None, limit: int | None = None
    ) -> list[ChatTurnData]:
        """Recent turns, oldest first, optionally for one session."""
        return await self.history.list_turns(
            identity, session_id=session_id, limit=limit or settings.history_page_size
        )

    async def list_sessions(self, identity: str, limit: int | None = None) -> list[SessionSummary]:
        """Most recently active sessions first."""
        return await self.history.list_sessions(
            identity, limit=limit or settings.sessions_page_size
        )

    async def delete_session(self, identity: str, session_id: str) -> int:
        """
        Delete every turn of a session.

        Raises:
            SessionNotFoundError: The caller has no turns in that session
        """
        deleted = await self.history.delete_session(identity, session_id)
        if deleted == 0:
            raise SessionNotFoundError(session_id)
        await self.session.commit()
        return deleted

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _settle(
        self,
        identity: str,
        session_id: str,
        replies: list[ProviderReply],
        credits_required: int,
    ) -> None:
        """Record assistant turns and debit in one transaction."""
        try:
            for reply in replies:
                await self.history.append(
                    ChatTurnData(
                        owner=identity,
                        session_id=session_id,
                        role=ChatRole.ASSISTANT,
                        model=reply.model,
                        content=reply.response,
                        timestamp=utc_now(),
                    )
                )
            await self.entitlements.debit(identity, credits_required)
            await self.session.commit()
        except InsufficientCreditsError:
            await self.session.rollback()
            metrics.record_chat_request("debit_race_lost")
            logger.warning(
                "chat_debit_race_lost",
                identity=identity,
                session_id=session_id,
                required=credits_required,
            )
            raise
        except Exception:
            await self.session.rollback()
            raise
