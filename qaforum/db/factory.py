"""
Store Factory

Builds the ForumStore selected by configuration.

Mode is determined by environment variables:
- FORUM_STORE_DRIVER: Explicit driver selection (memory, psycopg2)
- DATABASE_URL or DATABASE_HOST: Database connection (auto-selects psycopg2)
- Neither set: Use in-memory (default for development)

A configured database that cannot be reached is an error, not a
reason to fall back to memory.
"""

from ..core.errors import PersistenceUnavailable
from ..observability import get_logger
from .config import DatabaseConfig, StoreDriver, get_database_url, get_store_driver
from .store import ForumStore, InMemoryForumStore

logger = get_logger(__name__)


def create_store(init_schema: bool = False) -> ForumStore:
    """
    Create the appropriate ForumStore based on configuration.

    Args:
        init_schema: Run schema.sql against PostgreSQL before returning

    Returns:
        InMemoryForumStore for development/testing
        PostgresForumStore when a database is configured
    """
    driver = get_store_driver()

    if driver == StoreDriver.MEMORY:
        logger.info("Using in-memory forum store (no persistence)")
        return InMemoryForumStore()

    db_url = get_database_url()
    if db_url is None:
        config = DatabaseConfig.from_env()
    else:
        config = DatabaseConfig.from_url(db_url) if "://" in db_url else DatabaseConfig.from_env()
    if config.statement_timeout_ms is None:
        config.statement_timeout_ms = DatabaseConfig.from_env().statement_timeout_ms

    return create_postgres_store(config, init_schema=init_schema)


def create_postgres_store(config: DatabaseConfig, init_schema: bool = False) -> ForumStore:
    """Create PostgresForumStore with psycopg2 and verify the connection."""
    import psycopg2

    from .postgres import PostgresForumStore

    def connection_factory():
        return psycopg2.connect(config.to_dsn())

    try:
        test_conn = connection_factory()
        test_conn.close()
    except psycopg2.Error as e:
        logger.error(
            "Could not connect to PostgreSQL",
            database_url=config.to_url(include_password=False),
            error=str(e),
        )
        raise PersistenceUnavailable(f"Could not connect to PostgreSQL: {e}") from e

    store = PostgresForumStore(
        connection_factory,
        statement_timeout_ms=config.statement_timeout_ms,
    )
    if init_schema:
        store.init_schema()

    logger.info(
        "PostgreSQL forum store ready",
        host=config.host,
        port=config.port,
        database=config.database,
    )
    return store
