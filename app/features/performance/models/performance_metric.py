from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, Index
from datetime import datetime

from app.platform.db.base import BaseModel


class PerformanceMetric(BaseModel):
    """
    Median of the successful runs for one (site, batch, page type, device type).

    This is the record dashboards and alerting consume. Created once per group
    after every run in the group has resolved; never updated.
    """
    __tablename__ = "performance_metrics"

    site_id = Column(String, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(String(36), nullable=True, index=True)

    page_type = Column(String(20), nullable=False, default="homepage")
    page_url = Column(String(2048), nullable=True)
    device_type = Column(String(20), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    run_count = Column(Integer, nullable=False, default=1)

    performance = Column(Integer, nullable=True)
    fcp = Column(Float, nullable=True)
    lcp = Column(Float, nullable=True)
    cls = Column(Float, nullable=True)
    tbt = Column(Float, nullable=True)
    tti = Column(Float, nullable=True)
    ttfb = Column(Float, nullable=True)
    speed_index = Column(Float, nullable=True)
    page_weight = Column(Integer, nullable=True)
    request_count = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_metrics_site_page_device_ts", "site_id", "page_type", "device_type", "timestamp"),
    )
