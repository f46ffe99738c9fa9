"""Reward engine tables.

Creates users, characters, items, user_unlocks, runs, inventory_items,
medal_transactions, daily_check_ins and referrals.

Revision ID: 001_reward_engine
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_reward_engine"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            friend_code VARCHAR(8) UNIQUE,
            timezone VARCHAR(64) NOT NULL DEFAULT 'UTC',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Characters ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS characters (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name VARCHAR(64) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'alive',
            medal_balance INTEGER NOT NULL DEFAULT 0,
            total_runs INTEGER NOT NULL DEFAULT 0,
            total_distance BIGINT NOT NULL DEFAULT 0,
            stage VARCHAR(32) NOT NULL DEFAULT 'egg',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT characters_medal_balance_non_negative CHECK (medal_balance >= 0)
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS characters_one_alive_per_user
        ON characters(user_id) WHERE status = 'alive'
    """)

    # --- Catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS items (
            id INTEGER PRIMARY KEY,
            name VARCHAR(128) UNIQUE NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            is_special_reward BOOLEAN NOT NULL DEFAULT false,
            special_condition VARCHAR(32),
            price INTEGER,
            image_url VARCHAR(256) NOT NULL DEFAULT ''
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_items_rarity
        ON items(rarity) WHERE is_special_reward = false
    """)

    # --- Unlocks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_unlocks (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            item_id INTEGER NOT NULL REFERENCES items(id),
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_unlocks_user_item_key UNIQUE(user_id, item_id)
        )
    """)

    # --- Runs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            external_id VARCHAR(64) UNIQUE,
            distance_meters DOUBLE PRECISION NOT NULL,
            occurred_at TIMESTAMPTZ NOT NULL,
            timezone VARCHAR(64) NOT NULL DEFAULT 'UTC',
            polyline TEXT,
            weather JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_runs_user_occurred
        ON runs(user_id, occurred_at DESC)
    """)

    # --- Inventory ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS inventory_items (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            item_id INTEGER NOT NULL REFERENCES items(id),
            run_id BIGINT REFERENCES runs(id) ON DELETE SET NULL,
            equipped BOOLEAN NOT NULL DEFAULT false,
            acquired_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_inventory_user
        ON inventory_items(user_id)
    """)

    # --- Medal ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS medal_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id BIGINT,
            description VARCHAR(256) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS medal_transactions_user_created_idx
        ON medal_transactions(user_id, created_at)
    """)

    # --- Daily check-ins ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_check_ins (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            check_in_date DATE NOT NULL,
            medals_awarded INTEGER NOT NULL,
            streak_day INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT daily_check_ins_user_date_key UNIQUE(user_id, check_in_date)
        )
    """)

    # --- Referrals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referrals (
            id BIGSERIAL PRIMARY KEY,
            referrer_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referred_user_id VARCHAR(64) UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            medals_earned_from_referral INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT referrals_medals_within_cap
                CHECK (medals_earned_from_referral BETWEEN 0 AND 25)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_referrals_referrer
        ON referrals(referrer_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS referrals CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_check_ins CASCADE")
    op.execute("DROP TABLE IF EXISTS medal_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS inventory_items CASCADE")
    op.execute("DROP TABLE IF EXISTS runs CASCADE")
    op.execute("DROP TABLE IF EXISTS user_unlocks CASCADE")
    op.execute("DROP TABLE IF EXISTS items CASCADE")
    op.execute("DROP TABLE IF EXISTS characters CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
