import logging
from typing import List, Optional, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from app.platform.config import settings

logger = logging.getLogger(__name__)

# Priority order: product cards/items first, the generic anchor last
PRODUCT_LINK_SELECTORS = (
    '.product-card a[href*="/products/"]',
    '.product-item a[href*="/products/"]',
    '.product__link[href*="/products/"]',
    '[data-product-url]',
    'a[href*="/products/"]',
)


class HtmlFetcher:
    """Best-effort HTML fetch with a bounded timeout and a browser user agent."""

    def __init__(
        self,
        timeout: float = settings.DISCOVERY_TIMEOUT_SECONDS,
        user_agent: str = settings.DISCOVERY_USER_AGENT,
        max_redirects: int = settings.DISCOVERY_MAX_REDIRECTS,
        client: Optional[httpx.Client] = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_redirects = max_redirects
        self._client = client

    def fetch(self, url: str) -> str:
        """Return the body of `url`; raises httpx.HTTPError or httpx.InvalidURL."""
        if self._client is not None:
            return self._get(self._client, url)

        with httpx.Client(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
        ) as client:
            return self._get(client, url)

    def _get(self, client: httpx.Client, url: str) -> str:
        response = client.get(url, headers={"User-Agent": self.user_agent})
        response.raise_for_status()
        return response.text


def find_product_links(html: str, selectors: Sequence[str] = PRODUCT_LINK_SELECTORS) -> List[str]:
    """
    Candidate product links in selector priority order (duplicates removed).

    `[data-product-url]` elements contribute their data attribute; everything
    else contributes its href.
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    for selector in selectors:
        for element in soup.select(selector):
            href = element.get("href") or element.get("data-product-url")
            if not href:
                continue
            href = href.strip()
            if href and href not in links:
                links.append(href)
    return links


class ProductDiscoveryService:
    """
    Finds a product-detail URL for a storefront that has none configured.

    Searches `/collections/all` first, then the homepage. Any fetch failure is
    treated as "nothing found there"; a None result means the product page
    type is skipped for the batch.
    """

    def __init__(self, fetcher: Optional[HtmlFetcher] = None):
        self.fetcher = fetcher or HtmlFetcher()

    def discover_product_url(self, base_url: str) -> Optional[str]:
        base = base_url.rstrip("/")
        candidates = (f"{base}/collections/all", base)

        for page_url in candidates:
            logger.info(f"[Product Discovery] Searching {page_url} for product links")
            product_url = self._search(page_url, base)
            if product_url:
                logger.info(f"[Product Discovery] Found product URL: {product_url}")
                return product_url

        logger.warning(f"[Product Discovery] No product URLs found for {base_url}")
        return None

    def _search(self, page_url: str, base: str) -> Optional[str]:
        try:
            html = self.fetcher.fetch(page_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"[Product Discovery] Fetch failed for {page_url}: {e}")
            return None

        for href in find_product_links(html):
            resolved = urljoin(f"{base}/", href)
            if "/products/" in resolved:
                return resolved
        return None
