from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from helitour.core.config import settings

# SQLite connections are shared across TestClient threads
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """One session per request; routes own their commits and rollbacks."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
