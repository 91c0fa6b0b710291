# aura_connect/services/message_service.py
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from aura_connect.accounts.repository import UserRepository
from aura_connect.models.message import Message
from aura_connect.schemas.message_schema import MessageIngest
from aura_connect.services.errors import UserNotFound

logger = structlog.get_logger(__name__)


def _normalize(address: str) -> str:
    return address.strip().lower()


def thread_id_for(platform: str, sender: str, recipient: str, thread_key: Optional[str] = None) -> str:
    """
    Thread identity, computed once when a message is ingested and stored on it.
    A provider conversation id wins; otherwise the unordered sender/recipient
    pair, so both directions of a conversation land in the same thread.
    """
    if thread_key:
        key = f"key:{thread_key}"
    else:
        key = "pair:" + "|".join(sorted((_normalize(sender), _normalize(recipient))))
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:20]
    return f"{platform}:{digest}"


def _naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


class MessageService:
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self.clock = clock

    async def _get_by_external_id(self, user_id: str, platform: str, external_id: str) -> Optional[Message]:
        # dedupe is per tenant
        q = select(Message).where(
            Message.user_id == user_id, Message.platform == platform, Message.external_id == external_id
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def _latest_unanswered(self, user_id: str, thread_id: str, before: datetime) -> Optional[Message]:
        q = (
            select(Message)
            .where(
                Message.user_id == user_id,
                Message.thread_id == thread_id,
                Message.is_from_me == False,  # noqa: E712
                Message.responded == False,  # noqa: E712
                Message.timestamp <= before,
            )
            .order_by(Message.timestamp.desc())
        )
        res = await self.session.execute(q)
        return res.scalars().first()

    async def ingest(self, user_id: str, platform: str, payload: MessageIngest) -> Message:
        if await UserRepository(self.session).get_by_id(user_id) is None:
            raise UserNotFound(f"user {user_id} does not exist")

        if payload.external_id:
            existing = await self._get_by_external_id(user_id, platform, payload.external_id)
            if existing:
                logger.debug("message_duplicate_ignored", user_id=user_id, platform=platform, external_id=payload.external_id)
                return existing

        ts = _naive_utc(payload.timestamp)
        msg = Message(
            user_id=user_id,
            platform=platform,
            external_id=payload.external_id,
            thread_id=thread_id_for(platform, payload.sender, payload.recipient, payload.thread_key),
            sender=payload.sender,
            recipient=payload.recipient,
            content=payload.content,
            subject=payload.subject,
            timestamp=ts,
            is_from_me=payload.is_from_me,
            is_read=payload.is_from_me,
            ai_assisted=payload.ai_assisted,
            meta=payload.metadata,
            created_at=self.clock(),
        )

        if payload.is_from_me:
            answered = await self._latest_unanswered(user_id, msg.thread_id, ts)
            if answered is not None:
                answered.responded = True
                answered.response_time_seconds = (ts - answered.timestamp).total_seconds()
                self.session.add(answered)

        self.session.add(msg)
        await self.session.commit()
        await self.session.refresh(msg)
        logger.info("message_ingested", user_id=user_id, platform=platform, thread_id=msg.thread_id, outgoing=msg.is_from_me)
        return msg

    async def list_threads(self, user_id: str, platform: Optional[str] = None, limit: int = 50) -> List[dict]:
        q = select(Message).where(Message.user_id == user_id)
        if platform:
            q = q.where(Message.platform == platform)
        q = q.order_by(Message.timestamp.desc())
        res = await self.session.execute(q)

        latest: Dict[str, Message] = {}
        unread: Dict[str, int] = {}
        for msg in res.scalars().all():
            latest.setdefault(msg.thread_id, msg)
            if not msg.is_read and not msg.is_from_me:
                unread[msg.thread_id] = unread.get(msg.thread_id, 0) + 1

        # dicts keep insertion order, which is newest-first here
        threads = []
        for thread_id, msg in list(latest.items())[:limit]:
            threads.append({
                "thread_id": thread_id,
                "platform": msg.platform,
                "last_message": msg,
                "unread_count": unread.get(thread_id, 0),
            })
        return threads

    async def thread_messages(self, user_id: str, thread_id: str) -> List[Message]:
        q = (
            select(Message)
            .where(Message.user_id == user_id, Message.thread_id == thread_id)
            .order_by(Message.timestamp.asc())
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def mark_thread_read(self, user_id: str, thread_id: str) -> int:
        stmt = (
            update(Message)
            .where(Message.user_id == user_id, Message.thread_id == thread_id, Message.is_read == False)  # noqa: E712
            .values(is_read=True)
        )
        res = await self.session.execute(stmt)
        await self.session.commit()
        logger.info("thread_marked_read", user_id=user_id, thread_id=thread_id, updated=res.rowcount)
        return res.rowcount

    async def analytics(self, user_id: str, days: int = 30) -> dict:
        since = self.clock() - timedelta(days=days)
        q = select(Message).where(Message.user_id == user_id, Message.timestamp >= since)
        res = await self.session.execute(q)
        messages = list(res.scalars().all())

        by_platform: Dict[str, dict] = {}
        inbound = outbound = unread = responded = ai_replies = 0
        response_times = []
        for msg in messages:
            stats = by_platform.setdefault(msg.platform, {"inbound": 0, "outbound": 0, "unread": 0})
            if msg.is_from_me:
                outbound += 1
                stats["outbound"] += 1
                if msg.ai_assisted:
                    ai_replies += 1
                continue
            inbound += 1
            stats["inbound"] += 1
            if not msg.is_read:
                unread += 1
                stats["unread"] += 1
            if msg.responded:
                responded += 1
                if msg.response_time_seconds is not None:
                    response_times.append(msg.response_time_seconds)

        return {
            "days": days,
            "total_messages": len(messages),
            "inbound": inbound,
            "outbound": outbound,
            "unread": unread,
            "response_rate": round(responded / inbound, 4) if inbound else 0.0,
            "avg_response_time_seconds": sum(response_times) / len(response_times) if response_times else None,
            "ai_assisted_replies": ai_replies,
            "by_platform": by_platform,
        }
