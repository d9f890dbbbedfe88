import logging
from typing import Optional

from psycopg2 import pool

from core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Connection pool for the family inventory database
_family_pool: Optional[pool.ThreadedConnectionPool] = None


def _conn_common_kwargs(cfg: Settings):
    """Common connection kwargs with sane defaults for cloud envs."""
    # Keep startup snappy; let app boot even if DB is slow/unreachable
    return {"connect_timeout": cfg.DB_CONNECT_TIMEOUT, "sslmode": cfg.DB_SSLMODE}


def _get_family_pool(cfg: Optional[Settings] = None) -> pool.ThreadedConnectionPool:
    """Get or create the family inventory connection pool.

    Store calls run in the threadpool, so the pool must be the thread-safe flavour.
    """
    global _family_pool
    if _family_pool is None:
        cfg = cfg or default_settings
        if not all([cfg.FAMILY_DB_HOST, cfg.FAMILY_DB_PASSWORD]):
            raise ValueError("Missing required database environment variables: FAMILY_DB_HOST and FAMILY_DB_PASSWORD")

        _family_pool = pool.ThreadedConnectionPool(
            minconn=cfg.DB_POOL_MIN,
            maxconn=cfg.DB_POOL_MAX,
            host=cfg.FAMILY_DB_HOST,
            port=cfg.FAMILY_DB_PORT,
            database=cfg.FAMILY_DB_NAME,
            user=cfg.FAMILY_DB_USER,
            password=cfg.FAMILY_DB_PASSWORD,
            **_conn_common_kwargs(cfg),
        )
        logger.info(f"✅ Family database connection pool created ({cfg.DB_POOL_MIN}-{cfg.DB_POOL_MAX} connections)")

    return _family_pool


def get_family_connection(cfg: Optional[Settings] = None):
    """Get a raw psycopg2 connection for the family inventory"""
    return _get_family_pool(cfg).getconn()


def return_family_connection(conn):
    """Return a connection to the family pool"""
    if _family_pool and conn:
        _family_pool.putconn(conn)


def close_family_pool():
    global _family_pool
    if _family_pool is not None:
        _family_pool.closeall()
        _family_pool = None
        logger.info("Family database connection pool closed")


CREATE_ITEMS_TABLE = """
    CREATE TABLE IF NOT EXISTS family_items (
        id SERIAL PRIMARY KEY,
        family_id VARCHAR(32) NOT NULL,
        name TEXT NOT NULL,
        potency TEXT NOT NULL,
        company TEXT NOT NULL,
        location TEXT NOT NULL,
        sub_location TEXT,
        bottle_size TEXT,
        quantity INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""

CREATE_ITEMS_INDEX = "CREATE INDEX IF NOT EXISTS idx_family_items_family_id ON family_items (family_id)"


def initialize_database(cfg: Optional[Settings] = None) -> bool:
    """Test database connection and create the family_items table"""
    logger.info("🔧 Testing database connection...")

    try:
        conn = get_family_connection(cfg)
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        logger.warning("⚠️  Check FAMILY_DB_* configuration and environment variables")
        return False

    try:
        with conn.cursor() as cur:
            cur.execute(CREATE_ITEMS_TABLE)
            cur.execute(CREATE_ITEMS_INDEX)
        conn.commit()
        logger.info("✅ family_items table initialized")
        return True
    except Exception as e:
        conn.rollback()
        logger.error(f"⚠️  Could not initialize family_items table: {e}")
        return False
    finally:
        return_family_connection(conn)
