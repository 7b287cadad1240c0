from sqlalchemy import Column, String, Boolean, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from app.platform.db.base import BaseModel


class ThirdPartyScript(BaseModel):
    """A known third-party vendor script, keyed by (pseudo-)URL."""
    __tablename__ = "third_party_scripts"

    url = Column(String(2048), nullable=False, unique=True)
    domain = Column(String(512), nullable=False, index=True)
    vendor = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True, index=True)
    is_blocking = Column(Boolean, default=False, nullable=False)

    detections = relationship("ThirdPartyScriptDetection", back_populates="script", lazy="select")


class ThirdPartyScriptDetection(BaseModel):
    """One sighting of a script on a measured page, linked to the median metric it came with."""
    __tablename__ = "third_party_script_detections"

    site_id = Column(String, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    script_id = Column(String, ForeignKey("third_party_scripts.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_id = Column(String, ForeignKey("performance_metrics.id", ondelete="SET NULL"), nullable=True, index=True)

    page_type = Column(String(20), nullable=False, default="homepage")
    page_url = Column(String(2048), nullable=True)
    device_type = Column(String(20), nullable=False, default="mobile")

    transfer_size = Column(Float, nullable=True)  # bytes
    blocking_time = Column(Float, nullable=True)  # ms
    detected_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    script = relationship("ThirdPartyScript", back_populates="detections", lazy="joined")

    __table_args__ = (
        Index("idx_script_detections_site_ts", "site_id", "detected_at"),
    )
