from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

Base = declarative_base()


def make_session_factory(database_url: str, timeout: float = 5.0):
    """Engine and session factory for the optional orders database."""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout}
    else:
        connect_args = {"connect_timeout": int(timeout)}

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
    )
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)
