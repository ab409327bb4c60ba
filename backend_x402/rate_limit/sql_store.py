"""
SQLAlchemy-backed rate-limit store for multi-instance deployments.

All gateway instances point RATE_LIMIT_DB_URL at the same database (PostgreSQL
in production, SQLite for a single host). Each increment is one
UPDATE ... RETURNING statement, so concurrent requests from the same wallet
never lose an increment; the first message of a wallet inserts its row.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import Column, Float, Integer, String, case, create_engine, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend_x402.rate_limit.limiter import RateWindow
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()


class RateWindowRow(Base):
    """One row per wallet: message count of the current window and when it opened."""

    __tablename__ = "rate_windows"

    wallet = Column(String(64), primary_key=True)
    count = Column(Integer, nullable=False, default=1)
    window_start = Column(Float, nullable=False)  # Unix seconds

    def to_window(self) -> RateWindow:
        return RateWindow(wallet=self.wallet, count=self.count, window_start=self.window_start)


class SqlRateLimitStore:
    def __init__(self, database_url: str, *, engine: Any = None) -> None:
        if engine is None:
            connect_args = {}
            if database_url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
            engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
        self._engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.create_all(bind=engine)
        logger.info("rate_limit_store_ready", url=database_url.split("?")[0].split("//")[-1])

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, wallet: str) -> RateWindow | None:
        with self._session_scope() as session:
            row = session.get(RateWindowRow, wallet)
            return row.to_window() if row else None

    def _update(self, session: Session, wallet: str, now: float, window_sec: float) -> RateWindow | None:
        expired = RateWindowRow.window_start < now - window_sec
        stmt = (
            update(RateWindowRow)
            .where(RateWindowRow.wallet == wallet)
            .values(
                count=case((expired, 1), else_=RateWindowRow.count + 1),
                window_start=case((expired, now), else_=RateWindowRow.window_start),
            )
            .returning(RateWindowRow.count, RateWindowRow.window_start)
            .execution_options(synchronize_session=False)
        )
        row = session.execute(stmt).first()
        if row is None:
            return None
        return RateWindow(wallet=wallet, count=int(row[0]), window_start=float(row[1]))

    def increment_or_reset(self, wallet: str, now: float, window_sec: float) -> RateWindow:
        with self._session_scope() as session:
            window = self._update(session, wallet, now, window_sec)
            if window is not None:
                return window
        try:
            with self._session_scope() as session:
                session.add(RateWindowRow(wallet=wallet, count=1, window_start=now))
                session.flush()
            return RateWindow(wallet=wallet, count=1, window_start=now)
        except IntegrityError:
            # Another instance inserted the first row concurrently.
            logger.debug("rate_limit_insert_race", wallet_id=wallet)
        with self._session_scope() as session:
            window = self._update(session, wallet, now, window_sec)
        if window is None:
            raise RuntimeError(f"rate window for {wallet[:8]}... vanished during increment")
        return window
