from sqlalchemy import Column, String, Integer, Boolean, JSON, Index
from sqlalchemy.orm import relationship

from app.platform.db.base import BaseModel


DEFAULT_PAGE_TYPES = ["homepage", "category", "product"]
DEFAULT_DEVICE_TYPES = ["mobile", "desktop"]


class Site(BaseModel):
    """
    A monitored storefront.

    Owned by the site-management surface; the measurement pipeline only reads it.
    `category_url` and `product_url` are optional: the category page falls back to
    `{url}/collections/all` and the product page is discovered by scraping.
    """
    __tablename__ = "sites"

    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False, index=True)
    category_url = Column(String(2048), nullable=True)
    product_url = Column(String(2048), nullable=True)
    is_shopify = Column(Boolean, default=True, nullable=False)

    monitoring_enabled = Column(Boolean, default=True, nullable=False)

    # Test configuration
    page_types = Column(JSON, nullable=True, default=lambda: list(DEFAULT_PAGE_TYPES))
    device_types = Column(JSON, nullable=True, default=lambda: list(DEFAULT_DEVICE_TYPES))
    runs_per_combination = Column(Integer, nullable=True)  # NULL -> settings.RUNS_PER_COMBINATION

    jobs = relationship("ScheduledJob", back_populates="site", cascade="all, delete-orphan", lazy="select")

    __table_args__ = (
        Index("ix_sites_monitoring_name", "monitoring_enabled", "name"),
    )
