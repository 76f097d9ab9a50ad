import logging
import time

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from sweetshop import config

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Owns the engine and the session factory.

    One instance is built when the application starts and disposed when it
    stops; request handlers reach it through ``get_db``.
    """

    def __init__(self, url: str = None, echo: bool = False):
        self.url = url or config.DATABASE_URL
        if self.url.startswith("sqlite"):
            # In-memory SQLite only lives as long as its single connection
            self.engine = create_engine(
                self.url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                self.url,
                pool_pre_ping=True,
                echo=echo,
                pool_recycle=300,
            )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def wait_until_ready(self, max_retries: int = 30, retry_interval: float = 2) -> bool:
        logger.info("Waiting for the database at %s", self.engine.url.render_as_string(hide_password=True))

        for attempt in range(max_retries):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                logger.info("Database is available")
                return True
            except OperationalError as e:
                logger.warning("Attempt %d/%d: database not available yet (%s)", attempt + 1, max_retries, e)
                if attempt < max_retries - 1:
                    time.sleep(retry_interval)

        logger.error("Could not connect to the database after %d attempts", max_retries)
        return False

    def create_all(self):
        # models must be imported so their tables are registered on Base
        from sweetshop import models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)

    def is_available(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except OperationalError:
            return False

    def dispose(self):
        self.engine.dispose()


def get_db(request: Request):
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
