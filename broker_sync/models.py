"""
Broker Sync - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for broker sync persistence.

TABLES:
- broker_connections: One user's link to one broker
- broker_sync_logs: Append-only sync run log
- trades: Canonical round-trip trades
- broker_trades: Execution-to-trade links (dedup source)
- sync_locks: Per-connection advisory lock rows

DEDUP REQUIREMENT:
- (connection_id, broker_execution_id) is unique on broker_trades

============================================================
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin

from .types import (
    BrokerConnection,
    CanonicalTrade,
    ConnectionStatus,
    ExecutionLink,
    SyncRun,
    SyncRunStatus,
    SyncTrigger,
)


# ============================================================
# BROKER CONNECTION MODEL
# ============================================================

class BrokerConnectionModel(Base, TimestampMixin):
    """
    Persisted broker connection.

    credentials holds either the encrypted string or a legacy
    plain object.
    """

    __tablename__ = "broker_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    broker: Mapped[str] = mapped_column(String(32), nullable=False)
    credentials: Mapped[Any] = mapped_column(JSON, nullable=False)
    is_paper: Mapped[bool] = mapped_column(Boolean, default=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Sync state
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ConnectionStatus.IDLE.value)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    total_trades_synced: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    def to_domain(self) -> BrokerConnection:
        return BrokerConnection(
            connection_id=self.id,
            user_id=self.user_id,
            broker=self.broker,
            credentials=self.credentials,
            is_paper=bool(self.is_paper),
            status=ConnectionStatus(self.status),
            last_sync_at=self.last_sync_at,
            total_trades_synced=self.total_trades_synced or 0,
            error_message=self.error_message,
            account_id=self.account_id,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_domain(cls, connection: BrokerConnection) -> "BrokerConnectionModel":
        return cls(
            id=connection.connection_id,
            user_id=connection.user_id,
            broker=connection.broker,
            credentials=connection.credentials,
            is_paper=connection.is_paper,
            account_id=connection.account_id,
            status=connection.status.value,
            last_sync_at=connection.last_sync_at,
            total_trades_synced=connection.total_trades_synced,
            error_message=connection.error_message,
        )


# ============================================================
# SYNC LOG MODEL
# ============================================================

class SyncLogModel(Base):
    """One sync run."""

    __tablename__ = "broker_sync_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    connection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("broker_connections.id"), nullable=False, index=True
    )
    sync_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    trades_synced: Mapped[int] = mapped_column(Integer, default=0)
    trades_skipped: Mapped[int] = mapped_column(Integer, default=0)
    executions_fetched: Mapped[int] = mapped_column(Integer, default=0)
    duplicates_skipped: Mapped[int] = mapped_column(Integer, default=0)
    unmatched_executions: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_broker_sync_logs_connection_started", "connection_id", "started_at"),
    )

    def to_domain(self) -> SyncRun:
        return SyncRun(
            run_id=self.id,
            connection_id=self.connection_id,
            trigger=SyncTrigger(self.sync_type),
            status=SyncRunStatus(self.status),
            started_at=self.started_at,
            completed_at=self.completed_at,
            trades_synced=self.trades_synced or 0,
            trades_skipped=self.trades_skipped or 0,
            executions_fetched=self.executions_fetched or 0,
            duplicates_skipped=self.duplicates_skipped or 0,
            unmatched_executions=self.unmatched_executions or 0,
            error_message=self.error_message,
        )


# ============================================================
# TRADE MODEL
# ============================================================

class TradeModel(Base, TimestampMixin):
    """Canonical round-trip trade."""

    __tablename__ = "trades"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    date: Mapped[str] = mapped_column(String(10), nullable=False)
    instrument: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    entry_price: Mapped[float] = mapped_column(Float, nullable=False)
    exit_price: Mapped[float] = mapped_column(Float, nullable=False)
    stop_loss: Mapped[float] = mapped_column(Float, nullable=False)
    size: Mapped[float] = mapped_column(Float, nullable=False)
    pnl: Mapped[float] = mapped_column(Float, nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Normalized P&L breakdown
    raw_pnl: Mapped[Optional[float]] = mapped_column(Float)
    pnl_points: Mapped[Optional[float]] = mapped_column(Float)
    pnl_pips: Mapped[Optional[float]] = mapped_column(Float)
    pnl_percentage: Mapped[Optional[float]] = mapped_column(Float)

    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_trades_user_date", "user_id", "date"),
    )

    @classmethod
    def from_domain(cls, trade: CanonicalTrade) -> "TradeModel":
        breakdown = trade.pnl_breakdown
        return cls(
            id=trade.trade_id,
            user_id=trade.user_id,
            date=trade.trade_date,
            instrument=trade.symbol,
            direction=trade.direction.value,
            entry_price=trade.entry_price,
            exit_price=trade.exit_price,
            stop_loss=trade.stop_loss,
            size=trade.size,
            pnl=trade.pnl,
            outcome=trade.outcome.value,
            notes=trade.notes,
            raw_pnl=breakdown.raw_pnl if breakdown else None,
            pnl_points=breakdown.points if breakdown else None,
            pnl_pips=breakdown.pips if breakdown else None,
            pnl_percentage=breakdown.percentage if breakdown else None,
            opened_at=trade.opened_at,
            closed_at=trade.closed_at,
        )


# ============================================================
# EXECUTION LINK MODEL
# ============================================================

class BrokerTradeLinkModel(Base):
    """
    Execution-to-trade link.

    One row per source execution of an imported trade.
    """

    __tablename__ = "broker_trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    connection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("broker_connections.id"), nullable=False
    )
    trade_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trades.id"), nullable=False, index=True
    )
    broker_execution_id: Mapped[str] = mapped_column(String(128), nullable=False)
    broker_order_id: Mapped[Optional[str]] = mapped_column(String(128))
    role: Mapped[str] = mapped_column(String(8), nullable=False)
    raw_payload: Mapped[Optional[Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "connection_id",
            "broker_execution_id",
            name="uq_broker_trades_connection_execution",
        ),
    )

    @classmethod
    def from_domain(cls, link: ExecutionLink) -> "BrokerTradeLinkModel":
        return cls(
            connection_id=link.connection_id,
            trade_id=link.trade_id,
            broker_execution_id=link.execution_id,
            broker_order_id=link.order_id,
            role=link.role.value,
            raw_payload=link.raw or None,
        )


# ============================================================
# SYNC LOCK MODEL
# ============================================================

class SyncLockModel(Base):
    """Advisory per-connection sync lock. The primary key enforces one holder."""

    __tablename__ = "sync_locks"

    connection_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    token: Mapped[str] = mapped_column(String(64), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
