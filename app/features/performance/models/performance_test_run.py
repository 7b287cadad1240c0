from sqlalchemy import Column, String, Integer, Float, ForeignKey, Index, JSON
import enum

from app.platform.db.base import BaseModel


class PageType(str, enum.Enum):
    """Page under test"""
    homepage = "homepage"
    category = "category"
    product = "product"


class DeviceType(str, enum.Enum):
    """Emulation profile used by the measurement provider"""
    mobile = "mobile"
    desktop = "desktop"


class PerformanceTestRun(BaseModel):
    """
    One raw measurement attempt. Written once, never updated.

    Kept for audit/debugging; dashboards read the median rows instead.
    """
    __tablename__ = "performance_test_runs"

    site_id = Column(String, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(String(36), nullable=False, index=True)

    page_type = Column(String(20), nullable=False)
    page_url = Column(String(2048), nullable=False)
    device_type = Column(String(20), nullable=False)
    run_number = Column(Integer, nullable=False)

    # Metric vector
    performance = Column(Float, nullable=True)  # 0-100
    fcp = Column(Float, nullable=True)  # seconds
    lcp = Column(Float, nullable=True)  # seconds
    cls = Column(Float, nullable=True)
    tbt = Column(Float, nullable=True)  # ms
    tti = Column(Float, nullable=True)  # seconds
    ttfb = Column(Float, nullable=True)  # seconds
    speed_index = Column(Float, nullable=True)  # seconds
    page_weight = Column(Float, nullable=True)  # bytes
    request_count = Column(Float, nullable=True)

    # Provider diagnostics (third-party summary), forwarded to script processing
    diagnostics = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_test_runs_batch_group", "batch_id", "page_type", "device_type"),
    )
