"""
SQLAlchemy Database Models

The embedded store keeps the first-generation order table. It has no
paid/served/table_id/price columns; those were added to hosted
deployments later and are backfilled when records are read.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from qrmenu.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LegacyOrder(Base):
    """Order row in the legacy (first generation) schema."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    qr_id = Column(String(50), nullable=False, index=True)
    menu_id = Column(String(100), nullable=False)
    timestamp = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self):
        return f"<LegacyOrder #{self.id} - {self.qr_id} - {self.menu_id}>"
