import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy.orm import Session

from helitour.core.config import settings
from helitour.models.cancellation_policy import CancellationPolicy
from helitour.utils.cancellation_policy import DEFAULT_CANCELLATION_TIERS
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def create_database():
    """Create database if it doesn't exist."""
    if not settings.DATABASE_URL.startswith("postgresql"):
        return
    try:
        # Connect to default 'postgres' database to check/create target DB
        con = psycopg2.connect(
            user=settings.POSTGRES_USER,
            password=settings.POSTGRES_PASSWORD,
            host=settings.POSTGRES_SERVER,
            port=settings.POSTGRES_PORT,
            dbname="postgres"
        )
        con.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        cur = con.cursor()

        # Check if DB exists
        cur.execute("SELECT 1 FROM pg_catalog.pg_database WHERE datname = %s", (settings.POSTGRES_DB,))
        exists = cur.fetchone()

        if not exists:
            logger.info(f"Database {settings.POSTGRES_DB} does not exist. Creating...")
            cur.execute(f'CREATE DATABASE "{settings.POSTGRES_DB}"')
            logger.info(f"Database {settings.POSTGRES_DB} created successfully.")
        else:
            logger.info(f"Database {settings.POSTGRES_DB} already exists.")

        cur.close()
        con.close()
    except psycopg2.Error as e:
        logger.error(f"Error creating database: {e}")
        # Proceeding anyway, maybe it exists or connection params are for the target DB directly


def seed_cancellation_policies(db: Session) -> int:
    """Insert the default fee tiers when the policy table is empty."""
    if db.query(CancellationPolicy.id).first():
        return 0

    for order, (name, days_before, fee_percentage) in enumerate(DEFAULT_CANCELLATION_TIERS):
        db.add(CancellationPolicy(
            name=name,
            days_before=days_before,
            fee_percentage=fee_percentage,
            display_order=order,
            is_active=True,
        ))
    db.commit()
    logger.info(f"Seeded {len(DEFAULT_CANCELLATION_TIERS)} default cancellation tiers.")
    return len(DEFAULT_CANCELLATION_TIERS)

if __name__ == "__main__":
    create_database()
