"""
History Store - Append-only chat turns and the sessions derived from them.

A session has no row of its own: it exists while at least one turn carries
its session_id.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import ChatTurn
from app.models.api import ChatRole
from app.models.domain import ChatTurnData, SessionSummary

logger = get_logger(__name__)

SESSION_TITLE_LENGTH = 50
DEFAULT_PREVIEW = "New conversation"


def session_title(preview: str) -> str:
    """Truncate the first user message into a session title."""
    if len(preview) > SESSION_TITLE_LENGTH:
        return preview[:SESSION_TITLE_LENGTH] + "..."
    return preview


class HistoryStore:
    """Chat turns backed by the chat_turns table. Flushes only; callers commit."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize history store with database session."""
        self.session = session

    async def append(self, turn: ChatTurnData) -> None:
        """Record one turn."""
        self.session.add(
            ChatTurn(
                owner=turn.owner,
                session_id=turn.session_id,
                role=turn.role.value,
                model=turn.model,
                content=turn.content,
                timestamp=turn.timestamp,
            )
        )
        await self.session.flush()

    async def list_turns(
        self, owner: str, session_id: str | None = None, limit: int = 50
    ) -> list[ChatTurnData]:
        """
        Most recent turns for an owner, returned oldest first.

        Restricted to one session when session_id is given.
        """
        stmt = select(ChatTurn).where(ChatTurn.owner == owner)
        if session_id is not None:
            stmt = stmt.where(ChatTurn.session_id == session_id)
        stmt = stmt.order_by(ChatTurn.timestamp.desc(), ChatTurn.seq.desc()).limit(limit)

        result = await self.session.execute(stmt)
        turns = [self._turn_to_domain(row) for row in result.scalars().all()]
        turns.reverse()
        return turns

    async def session_turns(
        self, owner: str, session_id: str, limit: int = 500
    ) -> list[ChatTurnData]:
        """Turns of one session in canonical (timestamp ascending) order."""
        return await self.list_turns(owner, session_id=session_id, limit=limit)

    async def list_sessions(self, owner: str, limit: int = 20) -> list[SessionSummary]:
        """Sessions ordered by most recent activity."""
        last_activity = func.max(ChatTurn.timestamp).label("last_activity")
        message_count = func.count(ChatTurn.id).label("message_count")
        grouped = (
            select(ChatTurn.session_id, message_count, last_activity)
            .where(ChatTurn.owner == owner)
            .group_by(ChatTurn.session_id)
            .order_by(last_activity.desc())
            .limit(limit)
        )
        rows = (await self.session.execute(grouped)).all()
        if not rows:
            return []

        session_ids = [row.session_id for row in rows]
        first_user_turns = (
            select(ChatTurn.session_id, ChatTurn.content)
            .where(
                ChatTurn.owner == owner,
                ChatTurn.session_id.in_(session_ids),
                ChatTurn.role == ChatRole.USER.value,
            )
            .order_by(ChatTurn.session_id, ChatTurn.timestamp.asc(), ChatTurn.seq.asc())
        )
        previews: dict[str, str] = {}
        for session_id, content in (await self.session.execute(first_user_turns)).all():
            previews.setdefault(session_id, content)

        summaries = []
        for row in rows:
            preview = previews.get(row.session_id, DEFAULT_PREVIEW)
            summaries.append(
                SessionSummary(
                    session_id=row.session_id,
                    title=session_title(preview),
                    preview=preview,
                    message_count=row.message_count,
                    last_activity=row.last_activity,
                )
            )
        return summaries

    async def delete_session(self, owner: str, session_id: str) -> int:
        """Delete every turn of a session. Returns the number of turns removed."""
        stmt = delete(ChatTurn).where(
            ChatTurn.owner == owner, ChatTurn.session_id == session_id
        )
        result = await self.session.execute(stmt)
        deleted = result.rowcount or 0
        if deleted:
            await self.session.flush()
            logger.info(
                "chat_session_deleted",
                owner=owner,
                session_id=session_id,
                deleted_turns=deleted,
            )
        return deleted

    def _turn_to_domain(self, turn: ChatTurn) -> ChatTurnData:
        """Convert ORM turn to domain model."""
        return ChatTurnData(
            owner=turn.owner,
            session_id=turn.session_id,
            role=ChatRole(turn.role),
            model=turn.model,
            content=turn.content,
            timestamp=turn.timestamp,
        )
