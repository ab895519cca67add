import json
import ssl
import logging
import asyncpg

from ideaflow import config

logger = logging.getLogger(__name__)

db_pool = None


async def _init_connection(conn):
    # jsonb columns (ideas.ai_response, tasks.source_data) round-trip as Python objects
    await conn.set_type_codec('jsonb', encoder=json.dumps, decoder=json.loads, schema='pg_catalog')
    await conn.set_type_codec('json', encoder=json.dumps, decoder=json.loads, schema='pg_catalog')


def create_ssl_context():
    ssl_ctx = ssl.create_default_context()
    ssl_ctx.check_hostname = False
    ssl_ctx.verify_mode = ssl.CERT_NONE
    return ssl_ctx


async def get_db_pool():
    global db_pool
    if db_pool is None:
        db_pool = await asyncpg.create_pool(
            config.DATABASE_URL,
            ssl=create_ssl_context(),
            min_size=1,
            max_size=10,
            statement_cache_size=0,  # Required for Supabase transaction pooler
            init=_init_connection
        )
        logger.info("✓ Database pool created")
    return db_pool


async def close_db_pool():
    global db_pool
    if db_pool is not None:
        await db_pool.close()
        db_pool = None
        logger.info("Database pool closed")
