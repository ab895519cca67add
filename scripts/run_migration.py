#!/usr/bin/env python3
"""
Create the IdeaFlow tables.
This script uses the same database connection logic as the server.
"""
import asyncio
import sys

import asyncpg

from ideaflow import config
from ideaflow.database import create_ssl_context

MIGRATION_SQL = """
CREATE TABLE IF NOT EXISTS ideas (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL,
    content text NOT NULL,
    ai_response jsonb,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS tasks (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL,
    idea_id uuid,  -- weak reference, no foreign key cascade
    title text NOT NULL,
    description text,
    status text NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'in_progress', 'completed')),
    priority text NOT NULL DEFAULT 'medium'
        CHECK (priority IN ('low', 'medium', 'high')),
    estimated_duration text
        CHECK (estimated_duration IN ('15m', '30m', '1h', '2h', '4h', '1d')),
    due_date timestamptz,
    needs_user_input boolean NOT NULL DEFAULT false,
    timeline_question text,
    notification_sent boolean NOT NULL DEFAULT false,
    completed_at timestamptz,
    source_data jsonb,
    created_at timestamptz NOT NULL DEFAULT now(),
    updated_at timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT completed_at_matches_status
        CHECK ((status = 'completed') = (completed_at IS NOT NULL)),
    CONSTRAINT undated_while_needing_input
        CHECK (NOT (needs_user_input AND due_date IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS tasks_user_status_idx ON tasks (user_id, status);
CREATE INDEX IF NOT EXISTS tasks_completed_at_idx ON tasks (completed_at) WHERE status = 'completed';
CREATE INDEX IF NOT EXISTS tasks_due_date_idx ON tasks (due_date) WHERE status = 'pending';

CREATE TABLE IF NOT EXISTS messages (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL,
    content text,
    source text,
    ai_reply text,
    is_flagged boolean NOT NULL DEFAULT false,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS user_integrations (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL,
    integration_type text NOT NULL,
    access_token text,
    refresh_token text,
    expires_at timestamptz,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS push_subscriptions (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL,
    endpoint text NOT NULL,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS user_preferences (
    user_id uuid PRIMARY KEY,
    theme text NOT NULL DEFAULT 'light' CHECK (theme IN ('light', 'dark')),
    notifications_enabled boolean NOT NULL DEFAULT true,
    daily_reminder_time text NOT NULL DEFAULT '09:00',
    updated_at timestamptz NOT NULL DEFAULT now()
);
"""


async def run_migration():
    """Run the migration SQL"""
    try:
        conn = await asyncpg.connect(config.DATABASE_URL, ssl=create_ssl_context())
    except (asyncpg.PostgresError, OSError) as e:
        print(f"✗ Could not connect to database: {e}")
        sys.exit(1)

    print("✓ Connected to database")
    print("Running migration: create ideaflow tables...")
    try:
        await conn.execute(MIGRATION_SQL)
        print("✓ Migration completed successfully!")
    except asyncpg.PostgresError as e:
        print(f"✗ Migration failed: {e}")
        sys.exit(1)
    finally:
        await conn.close()


if __name__ == "__main__":
    if not config.DATABASE_URL:
        print("ERROR: DATABASE_URL environment variable is not set.")
        print("Please set it in your .env file or as an environment variable.")
        sys.exit(1)
    asyncio.run(run_migration())
