from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hotel_booking.application.interfaces.clock import Clock
from hotel_booking.application.interfaces.idempotency_repo import IdempotencyRecord, IdempotencyRepo
from hotel_booking.infrastructure.db.engine import session_scope
from hotel_booking.infrastructure.db.tables import idempotency_keys
from hotel_booking.infrastructure.services.clock_impl import ClockImpl


class IdempotencyRepoSQL(IdempotencyRepo):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Clock | None = None) -> None:
        self._session_maker = session_maker
        self._clock = clock or ClockImpl()

    async def get(self, scope: str, idem_key: str) -> IdempotencyRecord | None:
        stmt = (
            select(idempotency_keys)
            .where(
                idempotency_keys.c.scope == scope,
                idempotency_keys.c.idem_key == idem_key,
            )
            .limit(1)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
        if not row:
            return None
        return IdempotencyRecord(
            scope=row["scope"],
            idem_key=row["idem_key"],
            request_hash=row["request_hash"],
            booking_id=row["booking_id"],
        )

    async def claim(self, record: IdempotencyRecord) -> IdempotencyRecord:
        stmt = insert(idempotency_keys).values(
            scope=record.scope,
            idem_key=record.idem_key,
            request_hash=record.request_hash,
            booking_id=record.booking_id,
            created_at=self._clock.now().replace(tzinfo=None),
        )
        try:
            async with session_scope(self._session_maker) as session:
                await session.execute(stmt)
            return record
        except IntegrityError:
            existing = await self.get(record.scope, record.idem_key)
            if existing is None:
                raise
            return existing
