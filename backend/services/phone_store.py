"""
Phone Store

Raw-SQL access to phone_numbers and phone_messages.

Rows are returned as plain dicts keyed by column name. Message
uniqueness is not enforced by the schema; callers check
existing_message_keys() (sync path) or message_exists() (webhook path)
before inserting.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Iterable, Set, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from sms_rental.schema import BookingResolution, MessageSource, PhoneStatus, SmsMessage

logger = logging.getLogger(__name__)


PHONE_COLUMNS = """
    id, phone_number, rent_id, service, country, end_date, status, provider,
    external_url, order_id, order_booking_id, provider_id, auto_renewal, mode,
    cost, last_message_check, created_at, updated_at
"""


def _row(row) -> Optional[Dict[str, Any]]:
    return dict(row._mapping) if row is not None else None


class PhoneStore:
    """Persistence for leased numbers and their messages."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _write(self, query, params: Dict[str, Any]):
        """
        Execute and commit one statement.

        The session is shared by every row of a sync pass, so a failed write
        is rolled back before re-raising; the next row starts clean.
        """
        try:
            result = await self.db.execute(query, params)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result

    # ==================== PHONE NUMBERS ====================

    async def get_active_by_provider(self, provider: str) -> List[Dict[str, Any]]:
        query = text(f"""
            SELECT {PHONE_COLUMNS}
            FROM public.phone_numbers
            WHERE provider = :provider AND status = :status
            ORDER BY created_at
        """)
        result = await self.db.execute(query, {'provider': provider, 'status': PhoneStatus.ACTIVE.value})
        return [_row(r) for r in result.fetchall()]

    async def list_phone_numbers(self, provider: Optional[str] = None) -> List[Dict[str, Any]]:
        query_parts = [f"SELECT {PHONE_COLUMNS} FROM public.phone_numbers WHERE 1=1"]
        params = {}
        if provider:
            query_parts.append("AND provider = :provider")
            params['provider'] = provider
        query_parts.append("ORDER BY created_at DESC")
        result = await self.db.execute(text(" ".join(query_parts)), params)
        return [_row(r) for r in result.fetchall()]

    async def get_by_id(self, phone_id: str) -> Optional[Dict[str, Any]]:
        query = text(f"SELECT {PHONE_COLUMNS} FROM public.phone_numbers WHERE id = :id")
        result = await self.db.execute(query, {'id': phone_id})
        return _row(result.fetchone())

    async def get_by_phone_number(self, phone_number: str) -> Optional[Dict[str, Any]]:
        query = text(f"SELECT {PHONE_COLUMNS} FROM public.phone_numbers WHERE phone_number = :phone_number")
        result = await self.db.execute(query, {'phone_number': phone_number})
        return _row(result.fetchone())

    async def get_by_rent_id_or_id(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Look up by rent_id first, then by row id."""
        query = text(f"SELECT {PHONE_COLUMNS} FROM public.phone_numbers WHERE rent_id = :identifier LIMIT 1")
        result = await self.db.execute(query, {'identifier': identifier})
        row = _row(result.fetchone())
        if row:
            return row
        return await self.get_by_id(identifier)

    async def insert_phone_number(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert one phone_numbers row in its own transaction.

        Rolls back and re-raises on any database error so the caller can
        fall back to a partial-success response.
        """
        now = datetime.now(timezone.utc)
        params = {
            'id': record.get('id') or str(uuid.uuid4()),
            'phone_number': record['phone_number'],
            'rent_id': record.get('rent_id'),
            'service': record.get('service'),
            'country': record.get('country'),
            'end_date': record.get('end_date'),
            'status': record.get('status') or PhoneStatus.ACTIVE.value,
            'provider': record['provider'],
            'external_url': record.get('external_url'),
            'order_id': record.get('order_id'),
            'order_booking_id': record.get('order_booking_id'),
            'provider_id': record.get('provider_id'),
            'auto_renewal': bool(record.get('auto_renewal')),
            'mode': record.get('mode') or 'rental',
            'cost': record.get('cost'),
            'created_at': now,
        }
        query = text(f"""
            INSERT INTO public.phone_numbers
            (id, phone_number, rent_id, service, country, end_date, status, provider,
             external_url, order_id, order_booking_id, provider_id, auto_renewal, mode,
             cost, created_at, updated_at)
            VALUES (:id, :phone_number, :rent_id, :service, :country, :end_date, :status, :provider,
                    :external_url, :order_id, :order_booking_id, :provider_id, :auto_renewal, :mode,
                    :cost, :created_at, :created_at)
            RETURNING {PHONE_COLUMNS}
        """)
        try:
            result = await self.db.execute(query, params)
            row = _row(result.fetchone())
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return row

    async def update_booking(self, phone_id: str, resolution: BookingResolution) -> None:
        """Repair stored identifiers from a resolved booking."""
        query = text("""
            UPDATE public.phone_numbers
            SET order_id = COALESCE(:order_id, order_id),
                order_booking_id = :booking_id,
                external_url = :booking_id,
                rent_id = :booking_id,
                status = :status,
                end_date = COALESCE(:end_date, end_date),
                updated_at = :updated_at
            WHERE id = :id
        """)
        params = {
            'id': phone_id,
            'order_id': resolution.order_id,
            'booking_id': resolution.booking_id,
            'status': resolution.status,
            'end_date': resolution.end_date,
            'updated_at': datetime.now(timezone.utc),
        }
        await self._write(query, params)

    async def update_end_date(self, phone_id: str, end_date: datetime) -> None:
        query = text("""
            UPDATE public.phone_numbers
            SET end_date = :end_date, updated_at = :updated_at
            WHERE id = :id
        """)
        await self._write(query, {'id': phone_id, 'end_date': end_date, 'updated_at': datetime.now(timezone.utc)})

    async def delete_phone_number(self, phone_id: str) -> bool:
        query = text("DELETE FROM public.phone_numbers WHERE id = :id")
        result = await self._write(query, {'id': phone_id})
        return (result.rowcount or 0) > 0

    async def touch_last_message_check(self, phone_id: str) -> None:
        now = datetime.now(timezone.utc)
        query = text("""
            UPDATE public.phone_numbers
            SET last_message_check = :now, updated_at = :now
            WHERE id = :id
        """)
        await self._write(query, {'id': phone_id, 'now': now})

    # ==================== MESSAGES ====================

    async def existing_message_keys(self, phone_id: str) -> Set[Tuple[str, str]]:
        """(sender, message) pairs already stored for a number."""
        query = text("""
            SELECT sender, message
            FROM public.phone_messages
            WHERE phone_number_id = :phone_id
        """)
        result = await self.db.execute(query, {'phone_id': phone_id})
        return {(row.sender, row.message) for row in result.fetchall()}

    async def message_exists(
        self,
        phone_id: str,
        sender: str,
        message: str,
        received_at: Optional[datetime] = None
    ) -> bool:
        """Duplicate check; received_at narrows the match when given."""
        query_parts = ["""
            SELECT 1 FROM public.phone_messages
            WHERE phone_number_id = :phone_id AND sender = :sender AND message = :message
        """]
        params = {'phone_id': phone_id, 'sender': sender, 'message': message}
        if received_at is not None:
            query_parts.append("AND received_at = :received_at")
            params['received_at'] = received_at
        query_parts.append("LIMIT 1")
        result = await self.db.execute(text(" ".join(query_parts)), params)
        return result.fetchone() is not None

    async def insert_messages(
        self,
        phone_id: str,
        messages: Iterable[SmsMessage],
        source: str = MessageSource.API.value
    ) -> int:
        """Batch insert; returns the number of rows written."""
        rows = [
            {
                'id': str(uuid.uuid4()),
                'phone_number_id': phone_id,
                'sender': m.sender,
                'message': m.message,
                'received_at': m.received_at,
                'message_source': source,
                'created_at': datetime.now(timezone.utc),
            }
            for m in messages
        ]
        if not rows:
            return 0
        query = text("""
            INSERT INTO public.phone_messages
            (id, phone_number_id, sender, message, received_at, message_source, created_at)
            VALUES (:id, :phone_number_id, :sender, :message, :received_at, :message_source, :created_at)
        """)
        try:
            await self.db.execute(query, rows)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return len(rows)

    async def count_messages(self, phone_id: str) -> int:
        query = text("SELECT COUNT(*) FROM public.phone_messages WHERE phone_number_id = :phone_id")
        result = await self.db.execute(query, {'phone_id': phone_id})
        return int(result.scalar() or 0)


class PhoneNotFoundError(LookupError):
    """No phone_numbers row matches the given identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"Phone number {identifier} not found")
        self.identifier = identifier
