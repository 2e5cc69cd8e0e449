"""Fetch & classify engine for single opportunity pages."""

import logging
import random
import time
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx

from linkdrip.config import Settings
from linkdrip.services.page_classifier import Classification, get_classifier
from linkdrip.services.page_extractor import ExtractedPage, PageExtractor
from linkdrip.services.url_validator import ensure_scheme, normalize_url

logger = logging.getLogger(__name__)

# Non-HTML resources that are never worth following
SKIP_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".css", ".js", ".xml", ".json", ".zip", ".tar", ".gz", ".rar",
    ".mp3", ".mp4", ".avi", ".mov", ".wmv", ".flv", ".wav",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".exe", ".dmg",
)


@dataclass
class CrawlResult:
    """A fetched, extracted and classified page."""
    url: str
    final_url: str
    depth: int
    page: ExtractedPage
    classification: Classification
    prescore: int
    follow_links: list[str] = field(default_factory=list)

    @property
    def category(self) -> str:
        return self.classification.category


@dataclass
class CrawlError:
    """A page that could not be fetched. Returned, never raised."""
    url: str
    depth: int
    kind: str  # timeout, network, invalid_url, status, content_type, parse
    message: str
    status_code: int | None = None


class OpportunityCrawler:
    """Fetches one page at a time with politeness delays."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.timeout = settings.crawl_timeout_seconds
        self.delay_range = (settings.crawl_delay_min_seconds, settings.crawl_delay_max_seconds)
        self.user_agents = settings.user_agents
        self.max_follow_links = settings.crawl_max_follow_links
        self.default_max_depth = settings.crawl_engine_max_depth
        self.rng = rng or random.Random()
        self.extractor = PageExtractor()
        self.classifier = get_classifier()
        self._client = client
        self._owns_client = client is None

    def __enter__(self) -> "OpportunityCrawler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def _polite_delay(self) -> None:
        low, high = self.delay_range
        if high > 0:
            time.sleep(self.rng.uniform(low, high))

    def crawl(self, url: str, depth: int = 0, max_depth: int | None = None) -> CrawlResult | CrawlError:
        """Fetch, extract and classify one page.

        Follow links are only returned while ``depth < max_depth``.
        """
        if max_depth is None:
            max_depth = self.default_max_depth
        url = ensure_scheme(url)

        self._polite_delay()
        headers = {"User-Agent": self.rng.choice(self.user_agents)}

        try:
            response = self._get_client().get(url, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout crawling {url}: {e}")
            return CrawlError(url=url, depth=depth, kind="timeout", message=str(e) or "Request timed out")
        except httpx.HTTPError as e:
            logger.warning(f"Error crawling {url}: {e}")
            return CrawlError(url=url, depth=depth, kind="network", message=str(e))
        except httpx.InvalidURL as e:
            logger.warning(f"Invalid URL {url!r}: {e}")
            return CrawlError(url=url, depth=depth, kind="invalid_url", message=str(e))

        if not response.is_success:
            logger.info(f"Non-2xx response for {url}: HTTP {response.status_code}")
            return CrawlError(
                url=url,
                depth=depth,
                kind="status",
                message=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if "html" not in content_type.lower():
            return CrawlError(
                url=url,
                depth=depth,
                kind="content_type",
                message=f"Unsupported content type: {content_type or 'unknown'}",
                status_code=response.status_code,
            )

        final_url = str(response.url)
        try:
            page = self.extractor.extract(response.text, final_url)
            classification = self.classifier.classify(final_url, page)
            prescore = self.classifier.calculate_prescore(page, classification.category)

            follow_links: list[str] = []
            if depth < max_depth:
                follow_links = self._select_follow_links(page, final_url)
        except ValueError as e:
            logger.warning(f"Could not parse {final_url}: {e}")
            return CrawlError(
                url=url,
                depth=depth,
                kind="parse",
                message=f"Unparseable page: {e}",
                status_code=response.status_code,
            )

        logger.debug(
            f"Crawled {url} (depth {depth}): {classification.category} "
            f"weight={classification.weight} prescore={prescore} follow={len(follow_links)}"
        )

        return CrawlResult(
            url=url,
            final_url=final_url,
            depth=depth,
            page=page,
            classification=classification,
            prescore=prescore,
            follow_links=follow_links,
        )

    def _select_follow_links(self, page: ExtractedPage, page_url: str) -> list[str]:
        """Top same-host links ranked by how promising they look."""
        host = urlparse(page_url).netloc.lower()
        current = normalize_url(page_url)

        best: dict[str, int] = {}
        for link in page.links:
            if urlparse(link.url).netloc.lower() != host:
                continue
            normalized = normalize_url(link.url)
            if normalized == current or self._should_skip_url(normalized):
                continue
            score = self.classifier.score_link(link)
            if score <= 0:
                continue
            if score > best.get(normalized, 0):
                best[normalized] = score

        ranked = sorted(best.items(), key=lambda item: (-item[1], item[0]))
        return [url for url, _ in ranked[: self.max_follow_links]]

    def _should_skip_url(self, url: str) -> bool:
        """Skip binary assets and other non-page resources."""
        path = urlparse(url).path.lower()
        return path.endswith(SKIP_EXTENSIONS)
