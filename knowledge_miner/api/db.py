"""
Database connection helpers.

Every request opens its own psycopg2 connection and closes it in a
``finally`` block; rows come back as dicts (RealDictCursor).
"""

import os
import logging

import psycopg2
from psycopg2.extras import RealDictCursor
from fastapi import HTTPException

from .utils.dsn_mask import describe_database_url

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL", "")
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def get_db_connection():
    """Open a new connection. Raises HTTP 500 when DATABASE_URL is unset."""
    database_url = get_database_url()
    if not database_url:
        raise HTTPException(status_code=500, detail="Database not configured")

    return psycopg2.connect(database_url, cursor_factory=RealDictCursor)


def check_database() -> bool:
    """Cheap connectivity probe for /health."""
    try:
        conn = get_db_connection()
    except (HTTPException, psycopg2.Error) as e:
        logger.warning(f"Database unavailable ({describe_database_url()}): {e}")
        return False

    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        return True
    except psycopg2.Error as e:
        logger.warning(f"Database probe failed: {e}")
        return False
    finally:
        conn.close()
