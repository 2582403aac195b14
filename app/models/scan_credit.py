"""ORM model for viewer entitlements (scan credits), owned by the billing subsystem."""

from sqlalchemy import Column, DateTime, Integer, String, func

from app.models.base import Base


class ScanCredit(Base):
    """
    Entitlement record for one viewer.

    package_type: 'free' or 'pro' (unlimited tier)
    """

    __tablename__ = "scan_credits"

    viewer_id = Column(String(255), primary_key=True)
    credits_remaining = Column(Integer, nullable=False, default=0)
    package_type = Column(String(32), nullable=False, default="free")
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
