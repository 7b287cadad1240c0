"""
Third-party script tracking.

PageSpeed only reports third-party usage per entity ("Google Analytics",
"Klaviyo", ...), not per script URL, so each entity is stored under a
pseudo-URL `entity://<slug>` and every sighting becomes a detection row
linked to the median metric it was captured alongside.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from app.features.performance.services.persistence.repository import PerformanceRepository

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "third-party"
TOP_SCRIPTS_LIMIT = 10

# Substring match on the lowercased entity name; first hit wins
ENTITY_MAP: Dict[str, Dict[str, Any]] = {
    "google analytics": {"vendor": "Google Analytics", "category": "analytics"},
    "google tag manager": {"vendor": "Google Tag Manager", "category": "analytics"},
    "google optimize": {"vendor": "Google Optimize", "category": "optimization", "is_blocking": True},
    "google": {"vendor": "Google", "category": "analytics"},
    "facebook": {"vendor": "Facebook Pixel", "category": "analytics"},
    "meta": {"vendor": "Facebook Pixel", "category": "analytics"},
    "klaviyo": {"vendor": "Klaviyo", "category": "marketing"},
    "hotjar": {"vendor": "Hotjar", "category": "analytics"},
    "segment": {"vendor": "Segment", "category": "analytics"},
    "intercom": {"vendor": "Intercom", "category": "chat"},
    "zendesk": {"vendor": "Zendesk Chat", "category": "chat"},
    "gorgias": {"vendor": "Gorgias Chat", "category": "chat"},
    "yotpo": {"vendor": "Yotpo", "category": "reviews"},
    "judge.me": {"vendor": "Judge.me", "category": "reviews"},
    "privy": {"vendor": "Privy", "category": "marketing"},
    "optimizely": {"vendor": "Optimizely", "category": "optimization", "is_blocking": True},
    "shopify": {"vendor": "Shopify", "category": "shopify-app"},
    "tiktok": {"vendor": "TikTok Pixel", "category": "analytics"},
    "pinterest": {"vendor": "Pinterest Tag", "category": "analytics"},
    "snapchat": {"vendor": "Snapchat Pixel", "category": "analytics"},
    "affirm": {"vendor": "Affirm", "category": "payments"},
    "afterpay": {"vendor": "Afterpay", "category": "payments"},
    "klarna": {"vendor": "Klarna", "category": "payments"},
    "sezzle": {"vendor": "Sezzle", "category": "payments"},
    "recaptcha": {"vendor": "reCAPTCHA", "category": "security"},
}


def detect_from_entity_name(entity_name: str) -> Dict[str, Any]:
    """Known vendor for a PageSpeed entity name, or the name itself as vendor."""
    lower = entity_name.lower()
    for key, info in ENTITY_MAP.items():
        if key in lower:
            return {
                "vendor": info["vendor"],
                "category": info["category"],
                "is_blocking": info.get("is_blocking", False),
            }
    return {"vendor": entity_name, "category": DEFAULT_CATEGORY, "is_blocking": False}


def entity_pseudo_url(entity_name: str) -> str:
    return "entity://" + re.sub(r"\s+", "-", entity_name.lower())


def _entity_name(item: Dict[str, Any]) -> str:
    entity = item.get("entity")
    if isinstance(entity, dict):
        entity = entity.get("text")
    return entity or "Unknown"


class ThirdPartyScriptProcessor:

    def __init__(self, repository: PerformanceRepository):
        self.repository = repository

    def process_diagnostics(
        self,
        site_id: str,
        site_url: str,
        payload: Optional[Dict[str, Any]],
        metric_id: Optional[str] = None,
        page_type: str = "homepage",
        page_url: Optional[str] = None,
        device_type: str = "mobile",
    ) -> int:
        """
        Record one detection per third-party entity in `payload`.

        A failing item is logged and skipped. Returns the number of detections
        written.
        """
        items = (payload or {}).get("thirdParty") or []
        if not items:
            logger.info(f"No third-party scripts in diagnostics for site {site_id}")
            return 0

        logger.info(f"Processing {len(items)} third-party scripts for site {site_id}")

        recorded = 0
        for item in items:
            try:
                entity_name = _entity_name(item)
                detected = detect_from_entity_name(entity_name)

                script = self.repository.find_or_create_script(
                    entity_pseudo_url(entity_name),
                    domain=re.sub(r"\s+", ".", entity_name.lower()),
                    vendor=detected["vendor"],
                    category=detected["category"],
                    is_blocking=detected["is_blocking"],
                )

                self.repository.create_script_detection(
                    site_id=site_id,
                    script_id=script.id,
                    metric_id=metric_id,
                    page_type=page_type,
                    page_url=page_url or site_url,
                    device_type=device_type,
                    transfer_size=item.get("transferSize") or None,
                    blocking_time=item.get("blockingTime") or None,
                )
                recorded += 1
                logger.info(
                    f"Recorded detection: {detected['vendor']} - "
                    f"{item.get('transferSize')} bytes transfer, {item.get('blockingTime')}ms blocking"
                )
            except Exception as e:
                logger.error(f"Failed to process third-party script {item!r}: {e}", exc_info=True)

        return recorded

    def summarize_site(self, site_id: str) -> Dict[str, Any]:
        """Per-script averages, per-category totals and the top scripts by blocking time."""
        scripts: Dict[str, Dict[str, Any]] = {}

        for detection in self.repository.list_detections(site_id):
            script = detection.script
            entry = scripts.get(script.id)
            if entry is None:
                entry = scripts[script.id] = {
                    "id": script.id,
                    "url": script.url,
                    "domain": script.domain,
                    "vendor": script.vendor,
                    "category": script.category,
                    "is_blocking": script.is_blocking,
                    "detection_count": 0,
                    "total_transfer_size": 0.0,
                    "total_blocking_time": 0.0,
                    "last_seen": detection.detected_at,
                }
            entry["detection_count"] += 1
            entry["total_transfer_size"] += detection.transfer_size or 0
            entry["total_blocking_time"] += detection.blocking_time or 0
            if detection.detected_at and (entry["last_seen"] is None or detection.detected_at > entry["last_seen"]):
                entry["last_seen"] = detection.detected_at

        rows: List[Dict[str, Any]] = []
        for entry in scripts.values():
            count = entry["detection_count"]
            entry["avg_transfer_size"] = entry["total_transfer_size"] / count
            entry["avg_blocking_time"] = entry["total_blocking_time"] / count
            rows.append(entry)

        by_category: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            bucket = by_category.setdefault(
                row["category"] or "unknown",
                {"count": 0, "transfer_size": 0.0, "blocking_time": 0.0},
            )
            bucket["count"] += 1
            bucket["transfer_size"] += row["avg_transfer_size"]
            bucket["blocking_time"] += row["avg_blocking_time"]

        total_scripts = len(rows)
        total_transfer = sum(r["total_transfer_size"] for r in rows)
        total_blocking = sum(r["total_blocking_time"] for r in rows)

        return {
            "total_scripts": total_scripts,
            "total_transfer_size": total_transfer,
            "total_blocking_time": total_blocking,
            "avg_transfer_size": total_transfer / total_scripts if total_scripts else 0,
            "avg_blocking_time": total_blocking / total_scripts if total_scripts else 0,
            "by_category": by_category,
            "scripts": sorted(rows, key=lambda r: r["avg_blocking_time"], reverse=True)[:TOP_SCRIPTS_LIMIT],
        }
