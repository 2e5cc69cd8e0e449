"""
Test configuration and fixtures for the LinkDrip pipeline.

Service tests run against an in-memory SQLite database through a sync
session, the same way Celery workers talk to PostgreSQL. HTTP is served
by ``httpx.MockTransport`` and Redis by a small in-process double.
"""

import os
import tempfile

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"

from collections.abc import Generator  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from linkdrip.config import Settings  # noqa: E402
from linkdrip.database import Base  # noqa: E402
from linkdrip.models import DiscoveredOpportunity, User, Website, WebsiteProfile  # noqa: E402
from linkdrip.services.url_validator import extract_domain, normalize_url  # noqa: E402


# =============================================================================
# Redis double
# =============================================================================

class FakeRedis:
    """Just enough of redis.Redis for the metrics cache and the pipeline lock."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def mget(self, keys):
        return [self.store.get(key) for key in keys]

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def eval(self, script, numkeys, *args):
        key, token = args[0], args[1]
        if self.store.get(key) == token:
            return self.delete(key)
        return 0


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite with SAVEPOINT support for ``begin_nested``."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    session = Session(engine)
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    """Settings with politeness delays and external providers switched off."""
    return Settings(
        database_url=os.environ["DATABASE_URL"],
        crawl_delay_min_seconds=0,
        crawl_delay_max_seconds=0,
        metrics_chunk_delay_seconds=0,
        metrics_providers=[],
        user_agents=["linkdrip-test/1.0"],
    )


# =============================================================================
# HTTP
# =============================================================================

def html_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, html=body)


class MockSite:
    """Serves canned responses keyed by normalized URL and records every request."""

    def __init__(self, routes: dict | None = None):
        self.routes: dict[str, object] = {}
        self.requested: list[str] = []
        for url, response in (routes or {}).items():
            self.add(url, response)

    def add(self, url: str, response) -> None:
        """``response`` is an httpx.Response, an HTML string or an httpx exception class."""
        if isinstance(response, str):
            response = html_response(response)
        self.routes[normalize_url(url)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = normalize_url(str(request.url))
        self.requested.append(url)
        response = self.routes.get(url)
        if response is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(response, type) and issubclass(response, httpx.HTTPError):
            raise response(f"Simulated failure for {url}", request=request)
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), follow_redirects=True)


@pytest.fixture
def mock_site() -> MockSite:
    return MockSite()


# =============================================================================
# Pages
# =============================================================================

WRITE_FOR_US_HTML = """
<html>
<head>
  <title>Write For Us - Example Marketing Blog</title>
  <meta name="description" content="We accept contributions from marketers and founders who want to share practical advice.">
</head>
<body>
  <h1>Write for us</h1>
  <p>Want to submit a guest post? We publish practical marketing pieces every week.</p>
  <p>Send your pitch to <a href="mailto:editor@example.com">editor@example.com</a>.</p>
</body>
</html>
"""

RESOURCE_PAGE_HTML = """
<html>
<head><title>Helpful Resources for Gardeners</title></head>
<body>
  <h1>Useful links</h1>
  <p>Our list of helpful resources and recommended tools for organic gardening.</p>
  <ul>
    {links}
  </ul>
  <p>Suggest a site: <a href="mailto:hello@gardenhub.org">hello@gardenhub.org</a></p>
</body>
</html>
""".replace("{links}", "\n    ".join(
    f'<li><a href="https://site{i}.net/">Site {i}</a></li>' for i in range(25)
))


def hub_page(links: list[tuple[str, str]], title: str = "Marketing hub homepage") -> str:
    anchors = "\n".join(f'<a href="{href}">{text}</a>' for href, text in links)
    return f"<html><head><title>{title}</title></head><body><p>Welcome.</p>{anchors}</body></html>"


@pytest.fixture
def write_for_us_html() -> str:
    return WRITE_FOR_US_HTML


@pytest.fixture
def resource_page_html() -> str:
    return RESOURCE_PAGE_HTML


# =============================================================================
# Rows
# =============================================================================

def make_user(session: Session, email: str = "owner@gardenhub.org", **fields) -> User:
    user = User(email=email, **fields)
    session.add(user)
    session.flush()
    return user


def make_website(
    session: Session,
    user: User,
    url: str = "https://gardenhub.org",
    keywords: list[str] | None = None,
    **fields,
) -> Website:
    website = Website(user_id=user.id, url=url, name=fields.pop("name", "Garden Hub"), **fields)
    session.add(website)
    session.flush()
    if keywords is not None:
        session.add(WebsiteProfile(website_id=website.id, keywords=keywords, topics=[]))
        session.flush()
    return website


def make_opportunity(
    session: Session,
    url: str,
    status: str = "analyzed",
    domain_authority: int | None = 35,
    spam_score: int | None = 1,
    **fields,
) -> DiscoveredOpportunity:
    opportunity = DiscoveredOpportunity(
        url=url,
        domain=fields.pop("domain", extract_domain(url)),
        source_type=fields.pop("source_type", "resource_page"),
        status=status,
        **fields,
    )
    if domain_authority is not None:
        opportunity.attach_metrics(
            domain_authority=domain_authority,
            page_authority=max(0, domain_authority - 5),
            spam_score=spam_score or 0,
        )
    session.add(opportunity)
    session.flush()
    return opportunity

