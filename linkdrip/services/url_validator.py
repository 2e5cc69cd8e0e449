"""URL normalization and validation.

Normalizes crawl targets (scheme, fragment, trailing slash), extracts
the bare domain used as the metrics cache key, and checks that a
subscriber site is reachable before it is profiled.
"""

import html
import re
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

import httpx

DOMAIN_PATTERN = re.compile(r"^([a-zA-Z0-9]([a-zA-Z0-9\-]*[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$")


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` when the URL has no scheme."""
    url = url.strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
        url = f"https://{url.lstrip('/')}"
    return url


def normalize_url(url: str) -> str:
    """Normalize a URL for deduplication.

    Adds a scheme, lower-cases the host, drops the fragment and any
    trailing slash on the path. The query string is kept.
    """
    parsed = urlparse(ensure_scheme(url))
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", parsed.query, ""))


def extract_domain(url_or_domain: str) -> str:
    """Bare domain: no scheme, ``www.``, port or path; lower-cased."""
    netloc = urlparse(ensure_scheme(url_or_domain)).netloc.lower()
    netloc = netloc.rsplit("@", 1)[-1].split(":")[0]
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc


@dataclass
class ValidationResult:
    """Result of URL validation."""
    is_valid: bool
    error_message: str | None = None
    final_url: str | None = None  # After redirects
    title: str | None = None


class URLValidator:
    """Validates seed URLs and subscriber sites."""

    def __init__(self, timeout: float = 10.0, user_agent: str = "linkdrip-bot/1.0"):
        self.timeout = timeout
        self.user_agent = user_agent

    async def validate(self, url: str) -> ValidationResult:
        """Validate that a URL is well-formed, reachable and serves HTML."""
        url = ensure_scheme(url)
        format_error = self.validate_format(url)
        if format_error:
            return ValidationResult(is_valid=False, error_message=format_error)

        return await self._check_site(url)

    def validate_format(self, url: str) -> str | None:
        """Validate URL format. Returns error message or None if valid."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return "Invalid URL format"

        if parsed.scheme not in ("http", "https"):
            return "URL must use http:// or https://"

        if not parsed.netloc:
            return "URL must include a domain name"

        domain = parsed.netloc.lower().split(":")[0]
        if not DOMAIN_PATTERN.match(domain) and domain != "localhost":
            return "Invalid domain name"

        return None

    async def _check_site(self, url: str) -> ValidationResult:
        """Check that the site is reachable and has HTML content."""
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            ) as client:
                response = await client.get(url)

                if response.status_code >= 400:
                    return ValidationResult(
                        is_valid=False,
                        error_message=f"Site returned error: HTTP {response.status_code}",
                    )

                content_type = response.headers.get("content-type", "")
                if "text/html" not in content_type.lower():
                    return ValidationResult(
                        is_valid=False,
                        error_message="URL does not point to an HTML page",
                    )

                return ValidationResult(
                    is_valid=True,
                    final_url=str(response.url).rstrip("/"),
                    title=self._extract_title(response.text),
                )

        except httpx.TimeoutException:
            return ValidationResult(
                is_valid=False,
                error_message="Site took too long to respond (timeout)",
            )
        except httpx.ConnectError:
            return ValidationResult(
                is_valid=False,
                error_message="Could not connect to site. Check the URL and try again.",
            )
        except httpx.HTTPError as e:
            return ValidationResult(
                is_valid=False,
                error_message=f"Could not access site: {e}",
            )

    def _extract_title(self, html_content: str) -> str | None:
        """Extract page title from HTML, decoding HTML entities."""
        match = re.search(r"<title[^>]*>([^<]+)</title>", html_content, re.IGNORECASE)
        if match:
            return html.unescape(match.group(1).strip()[:200])
        return None
