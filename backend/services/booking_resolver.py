"""
Booking Resolver

Some providers hand out one identifier at rental time and answer status
queries under another (Anosim: order id vs. order booking id). When a
stored identifier stops returning data, the resolver asks the provider
which booking currently holds the number and repairs the stored row.
"""

import logging
from typing import Optional, Dict, Any

from logging_config import mask_phone
from sms_rental.base import BaseProviderAdapter
from sms_rental.errors import ProviderError
from sms_rental.schema import BookingResolution

logger = logging.getLogger(__name__)


class BookingResolver:
    """Resolve and persist the live booking for a stored phone row."""

    def __init__(self, store):
        self.store = store

    async def resolve(
        self,
        adapter: BaseProviderAdapter,
        row: Dict[str, Any]
    ) -> Optional[BookingResolution]:
        """
        Look up the live booking for row and write it back when it differs.

        Returns None when the provider does not know the number or the
        lookup itself fails; resolution is best effort and never raises
        provider errors.
        """
        phone_number = row.get('phone_number')
        try:
            resolution = await adapter.resolve_booking(phone_number)
        except ProviderError as e:
            logger.warning(f"Booking resolution failed for {mask_phone(phone_number)} on {adapter.name}: {e}")
            return None

        if resolution is None:
            return None

        stored_id = adapter.external_id_for(row)
        changed = (
            resolution.booking_id != stored_id
            or (resolution.order_id and resolution.order_id != row.get('order_id'))
            or resolution.status != row.get('status')
        )
        if changed:
            logger.info(
                f"Repairing {adapter.name} booking for {mask_phone(phone_number)}: "
                f"{stored_id} -> {resolution.booking_id} ({resolution.status})"
            )
            await self.store.update_booking(row['id'], resolution)
        return resolution
