"""Structured signal extraction from fetched HTML.

Pulls out everything classification and persistence need from one page:
title, description, headings, outbound links, contact emails, contact
form presence, category tags and boilerplate-free body text.
"""

import html
import re
from dataclasses import dataclass, field
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup

from linkdrip.services.url_validator import extract_domain

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")

MAX_EMAILS = 5
MAX_CONTENT_CHARS = 1000
MIN_TITLE_LENGTH = 10

# Placeholder, template and vendor domains that show up in page source
EMAIL_DENYLIST_DOMAINS = (
    "example.com",
    "example.org",
    "domain.com",
    "email.com",
    "yourdomain.com",
    "yoursite.com",
    "company.com",
    "sentry.io",
    "sentry-next.",
    "wixpress.com",
    "godaddy.com",
)

EMAIL_JUNK_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".css", ".js")

# Elements dropped before body text is taken
BOILERPLATE_TAGS = [
    "script", "style", "noscript", "nav", "header", "footer",
    "aside", "form", "iframe", "svg",
]

CATEGORY_SELECTORS = [".category", ".categories", ".tag", ".tags"]

FORUM_SELECTORS = [
    "[class*='thread']", "[class*='reply']", "[class*='topic-list']", "[class*='forum']",
]

COMMENT_SELECTORS = [
    "#comments", ".comments", "#respond", ".comment-form", "form#commentform",
    "[class*='comment-list']",
]


@dataclass
class Link:
    url: str
    text: str


@dataclass
class ExtractedPage:
    """Signals extracted from one HTML page."""
    url: str
    title: str | None = None
    description: str | None = None
    text: str = ""
    headings: list[str] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)
    external_link_count: int = 0
    emails: list[str] = field(default_factory=list)
    has_contact_form: bool = False
    has_comment_section: bool = False
    has_forum_markup: bool = False
    categories: list[str] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def summary(self) -> str:
        return self.text[:MAX_CONTENT_CHARS]

    @property
    def has_contact_channel(self) -> bool:
        return bool(self.emails) or self.has_contact_form


class PageExtractor:
    """Extracts an ``ExtractedPage`` from raw HTML."""

    def extract(self, html_content: str, url: str) -> ExtractedPage:
        soup = BeautifulSoup(html_content, "lxml")
        page_host = urlparse(url).netloc.lower()

        links = self._extract_links(soup, url)
        page = ExtractedPage(
            url=url,
            title=self._extract_title(soup),
            description=self._extract_description(soup),
            headings=self._extract_headings(soup),
            links=links,
            external_link_count=sum(
                1 for link in links if urlparse(link.url).netloc.lower() != page_host
            ),
            emails=self._extract_emails(soup, url),
            has_contact_form=self._has_contact_form(soup),
            has_comment_section=self._matches_any(soup, COMMENT_SELECTORS),
            has_forum_markup=self._matches_any(soup, FORUM_SELECTORS),
            categories=self._extract_categories(soup),
        )

        # Body text is taken last, stripping boilerplate mutates the tree
        page.text = self._extract_text(soup)
        return page

    def _extract_title(self, soup: BeautifulSoup) -> str | None:
        """Prefer <title>, fall back to the first heading when the title is too short."""
        title = None
        if soup.title and soup.title.string:
            title = html.unescape(soup.title.string.strip())

        if not title or len(title) < MIN_TITLE_LENGTH:
            for tag in ("h1", "h2"):
                heading = soup.find(tag)
                if heading:
                    text = " ".join(heading.get_text(" ", strip=True).split())
                    if len(text) > len(title or ""):
                        title = html.unescape(text)
                        break

        return title[:512] if title else None

    def _extract_description(self, soup: BeautifulSoup) -> str | None:
        """Extract meta description, falling back to Open Graph."""
        meta = soup.find("meta", attrs={"name": "description"})
        if meta and meta.get("content"):
            return html.unescape(meta["content"].strip())

        og = soup.find("meta", attrs={"property": "og:description"})
        if og and og.get("content"):
            return html.unescape(og["content"].strip())

        return None

    def _extract_headings(self, soup: BeautifulSoup) -> list[str]:
        headings = []
        for tag in soup.find_all(["h1", "h2", "h3"]):
            text = " ".join(tag.get_text(" ", strip=True).split())
            if text:
                headings.append(text)
        return headings

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> list[Link]:
        """Absolute http(s) links with their anchor text."""
        links = []
        for a in soup.find_all("a", href=True):
            href = a["href"].strip()
            if href.startswith(("mailto:", "tel:", "javascript:", "#")):
                continue
            try:
                abs_url = urljoin(base_url, href)
                scheme = urlparse(abs_url).scheme
            except ValueError:
                # e.g. an unterminated IPv6 host such as http://[broken
                continue
            if scheme not in ("http", "https"):
                continue
            links.append(Link(url=abs_url, text=" ".join(a.get_text(" ", strip=True).split())))
        return links

    def _extract_emails(self, soup: BeautifulSoup, url: str) -> list[str]:
        """Emails from visible text and mailto links, in document order."""
        candidates = EMAIL_PATTERN.findall(soup.get_text(" "))
        for a in soup.select("a[href^='mailto:'], a[href^='MAILTO:']"):
            address = unquote(a["href"].split(":", 1)[1].split("?", 1)[0])
            candidates.extend(EMAIL_PATTERN.findall(address))

        site_domain = extract_domain(url)
        emails: list[str] = []
        for raw in candidates:
            email = raw.strip().strip(".").lower()
            if email in emails or self._is_junk_email(email, site_domain):
                continue
            emails.append(email)
            if len(emails) >= MAX_EMAILS:
                break
        return emails

    def _is_junk_email(self, email: str, site_domain: str) -> bool:
        if email.endswith(EMAIL_JUNK_SUFFIXES):
            return True

        domain = email.rsplit("@", 1)[-1]
        # A site's own address is never a placeholder
        if domain == site_domain or domain.endswith(f".{site_domain}"):
            return False

        return any(bad in domain for bad in EMAIL_DENYLIST_DOMAINS)

    def _has_contact_form(self, soup: BeautifulSoup) -> bool:
        for form in soup.find_all("form"):
            if form.find("input", attrs={"type": "email"}) or form.find("textarea"):
                return True
            if "contact" in (form.get("action") or "").lower():
                return True

        for a in soup.find_all("a", href=True):
            if "contact" in a["href"].lower() or "contact" in a.get_text(strip=True).lower():
                return True

        return False

    def _extract_categories(self, soup: BeautifulSoup) -> list[str]:
        """Category/tag labels plus meta keywords, de-duplicated."""
        seen: set[str] = set()
        categories: list[str] = []

        def add(label: str) -> None:
            label = " ".join(label.split())
            if label and label.lower() not in seen and len(label) <= 100:
                seen.add(label.lower())
                categories.append(label)

        for selector in CATEGORY_SELECTORS:
            for element in soup.select(selector):
                add(element.get_text(" ", strip=True))

        meta = soup.find("meta", attrs={"name": "keywords"})
        if meta and meta.get("content"):
            for keyword in meta["content"].split(","):
                add(keyword)

        return categories

    def _matches_any(self, soup: BeautifulSoup, selectors: list[str]) -> bool:
        return any(soup.select_one(selector) for selector in selectors)

    def _extract_text(self, soup: BeautifulSoup) -> str:
        for tag in BOILERPLATE_TAGS:
            for element in soup.find_all(tag):
                element.decompose()
        body = soup.body or soup
        return " ".join(body.get_text(" ", strip=True).split())
