import logging

from sqlmodel import SQLModel, create_engine

from studio.config import DATABASE_URL

logger = logging.getLogger(__name__)

# No DATABASE_URL means persistence is disabled
engine = create_engine(DATABASE_URL) if DATABASE_URL else None

def create_db_and_tables(engine=engine):
    """Create the tables; an unreachable database is logged, never raised."""
    if engine is None:
        logger.info("DATABASE_URL not set, persistence disabled.")
        return False
    try:
        SQLModel.metadata.create_all(engine)
    except Exception as e:
        logger.error(f"Error creating database tables, writes will fail until the database is reachable: {e}")
        return False
    return True
