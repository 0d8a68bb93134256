"""
Database Migration: Create Phone Rental Tables

Creates phone_numbers and phone_messages. Message de-duplication is done
by the application on (phone_number_id, sender, message), so
phone_messages carries no content uniqueness constraint.
"""

import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text
from database.connection import engine


SQL_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS public.phone_numbers (
        id VARCHAR(36) PRIMARY KEY DEFAULT gen_random_uuid()::text,
        phone_number VARCHAR(32) NOT NULL UNIQUE,
        rent_id VARCHAR(64),
        service VARCHAR(64),
        country VARCHAR(16),
        end_date TIMESTAMPTZ,
        status VARCHAR(16) NOT NULL DEFAULT 'active',
        provider VARCHAR(32) NOT NULL DEFAULT 'sms_activate',

        -- Provider-specific identifiers
        external_url VARCHAR(255),
        order_id VARCHAR(64),
        order_booking_id VARCHAR(64),
        provider_id VARCHAR(64),

        auto_renewal BOOLEAN DEFAULT false,
        mode VARCHAR(16) NOT NULL DEFAULT 'rental',
        cost DOUBLE PRECISION,

        last_message_check TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

        CONSTRAINT phone_numbers_status_check
            CHECK (status IN ('active', 'expired')),
        CONSTRAINT phone_numbers_provider_check
            CHECK (provider IN ('sms_activate', 'smspva', 'anosim', 'gogetsms')),
        CONSTRAINT phone_numbers_mode_check
            CHECK (mode IN ('rental', 'activation'))
    )
    """,

    """
    CREATE TABLE IF NOT EXISTS public.phone_messages (
        id VARCHAR(36) PRIMARY KEY DEFAULT gen_random_uuid()::text,
        phone_number_id VARCHAR(36) NOT NULL REFERENCES public.phone_numbers(id) ON DELETE CASCADE,
        sender VARCHAR(255) NOT NULL,
        message TEXT NOT NULL,
        received_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        message_source VARCHAR(16) NOT NULL DEFAULT 'api',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

        CONSTRAINT phone_messages_source_check
            CHECK (message_source IN ('api', 'webhook'))
    )
    """,

    # Indexes for phone_numbers
    "CREATE INDEX IF NOT EXISTS idx_phone_numbers_provider_status ON public.phone_numbers(provider, status)",
    "CREATE INDEX IF NOT EXISTS idx_phone_numbers_rent_id ON public.phone_numbers(rent_id)",

    # Indexes for phone_messages
    "CREATE INDEX IF NOT EXISTS idx_phone_messages_phone ON public.phone_messages(phone_number_id)",
    "CREATE INDEX IF NOT EXISTS idx_phone_messages_phone_received ON public.phone_messages(phone_number_id, received_at)",
]


async def create_tables():
    """Create the phone rental tables."""
    print("Creating phone rental tables...")

    async with engine.begin() as conn:
        for i, sql in enumerate(SQL_STATEMENTS):
            try:
                await conn.execute(text(sql))
                print(f"  ✓ Statement {i+1}/{len(SQL_STATEMENTS)} executed")
            except Exception as e:
                if "already exists" in str(e).lower():
                    print(f"  ✓ Statement {i+1}/{len(SQL_STATEMENTS)} (already exists)")
                else:
                    print(f"  ✗ Statement {i+1}/{len(SQL_STATEMENTS)} failed: {e}")
                    raise

        print("\n✅ Phone rental tables created successfully!")


if __name__ == "__main__":
    asyncio.run(create_tables())
