"""
Tests for page extraction, classification, pre-scoring and link ranking.
"""

import pytest
from conftest import WRITE_FOR_US_HTML

from linkdrip.services.page_classifier import OPPORTUNITY_CATEGORIES, PageClassifier
from linkdrip.services.page_extractor import ExtractedPage, Link, PageExtractor


# =============================================================================
# Extraction
# =============================================================================

class TestPageExtractor:
    """Signals pulled out of raw HTML."""

    def test_write_for_us_page(self):
        page = PageExtractor().extract(WRITE_FOR_US_HTML, "https://example.com/write-for-us")

        assert page.title == "Write For Us - Example Marketing Blog"
        assert page.description.startswith("We accept contributions")
        assert page.headings == ["Write for us"]
        assert page.emails == ["editor@example.com"]
        assert "submit a guest post" in page.text.lower()

    def test_short_title_falls_back_to_heading(self):
        html = "<html><head><title>Home</title></head><body><h1>Garden Hub Organic Supplies</h1></body></html>"
        page = PageExtractor().extract(html, "https://gardenhub.org/")
        assert page.title == "Garden Hub Organic Supplies"

    def test_open_graph_description_fallback(self):
        html = (
            '<html><head><meta property="og:description" content="Seeds and soil for growers">'
            "</head><body></body></html>"
        )
        page = PageExtractor().extract(html, "https://gardenhub.org/")
        assert page.description == "Seeds and soil for growers"

    def test_placeholder_and_asset_emails_are_dropped(self):
        html = """
        <html><body>
          <p>Template: you@yourdomain.com</p>
          <img src="logo@2x.png">
          <p>Reach us at logo@2x.png or team@gardenhub.org</p>
          <a href="mailto:Team@GardenHub.org?subject=Hi">Email</a>
        </body></html>
        """
        page = PageExtractor().extract(html, "https://gardenhub.org/contact")
        assert page.emails == ["team@gardenhub.org"]

    def test_email_limit(self):
        addresses = " ".join(f"writer{i}@gardenhub.org" for i in range(8))
        page = PageExtractor().extract(f"<html><body><p>{addresses}</p></body></html>", "https://gardenhub.org")
        assert len(page.emails) == 5

    def test_contact_form_detection(self):
        html = '<html><body><form action="/send"><textarea name="message"></textarea></form></body></html>'
        page = PageExtractor().extract(html, "https://gardenhub.org/")
        assert page.has_contact_form
        assert page.has_contact_channel

    def test_boilerplate_is_not_body_text(self):
        html = """
        <html><body>
          <nav>Home Shop Cart</nav>
          <main><p>Composting guide for beginners</p></main>
          <footer>Copyright notice</footer>
          <script>var tracking = 1;</script>
        </body></html>
        """
        page = PageExtractor().extract(html, "https://gardenhub.org/guide")
        assert page.text == "Composting guide for beginners"

    def test_links_are_absolute_and_filtered(self):
        html = """
        <html><body>
          <a href="/resources">Resources</a>
          <a href="https://other.org/page">Other</a>
          <a href="mailto:a@gardenhub.org">Mail</a>
          <a href="javascript:void(0)">JS</a>
          <a href="#top">Top</a>
        </body></html>
        """
        page = PageExtractor().extract(html, "https://gardenhub.org/blog/post")
        assert [link.url for link in page.links] == [
            "https://gardenhub.org/resources",
            "https://other.org/page",
        ]
        assert page.external_link_count == 1

    def test_categories_and_meta_keywords(self):
        html = """
        <html><head><meta name="keywords" content="gardening, Compost, gardening"></head>
        <body><span class="tag">Compost</span><span class="category">Tools</span></body></html>
        """
        page = PageExtractor().extract(html, "https://gardenhub.org/")
        assert page.categories == ["Tools", "Compost", "gardening"]


# =============================================================================
# Classification
# =============================================================================

# Category -> (url, html, non-zero weights)
CATEGORY_PAGES = {
    "resource_page": (
        "https://gardenhub.org/useful-links",
        """
        <html><body>
          <h1>Useful links</h1>
          <p>Helpful resources for home growers.</p>
          <a href="https://seedsavers.org">Seed Savers Exchange</a>
          <a href="https://soilassociation.org">Soil Association</a>
        </body></html>
        """,
        # links + useful-links in the path, three phrases
        {"resource_page": 7},
    ),
    "guest_post": (
        "https://example.com/write-for-us",
        WRITE_FOR_US_HTML,
        # path 2, two phrases, contributor heading 2
        {"guest_post": 6},
    ),
    "directory": (
        "https://localbiz.example.org/directory",
        """
        <html><body>
          <h1>Local Business Directory</h1>
          <p>Browse categories or add your listing today.</p>
        </body></html>
        """,
        {"directory": 5},
    ),
    "forum": (
        "https://growers.example.org/forum/gardening",
        """
        <html><body>
          <div class="thread-list">
            <div class="thread">Best compost mix <span>12 replies</span></div>
          </div>
          <p>Join the community and start a discussion.</p>
        </body></html>
        """,
        # path 2, three phrases, thread markup 1
        {"forum": 6},
    ),
    "blog": (
        "https://gardenhub.org/blog/spring-planting",
        """
        <html><body>
          <article>
            <h2>Spring planting</h2>
            <p>Posted on March 3 by Dana.</p>
            <p>Seeds go in once the soil warms.</p>
          </article>
          <h3>Recent posts</h3>
        </body></html>
        """,
        {"blog": 4},
    ),
    "competitor_backlink": (
        "https://seotool.example.org/referring-domains",
        """
        <html><body>
          <h1>Backlink checker</h1>
          <p>See the referring domains and link profile of any site.</p>
        </body></html>
        """,
        {"competitor_backlink": 5},
    ),
    "social_mention": (
        "https://gardenhub.org/mentions",
        """
        <html><body>
          <h1>Brand mentions</h1>
          <p>Mentioned by gardeners on social media this week.</p>
          <p>Follow us for more.</p>
        </body></html>
        """,
        {"social_mention": 5},
    ),
    "comment_section": (
        "https://gardenhub.org/p/compost-tips",
        """
        <html><body>
          <article><p>Compost tips for beginners.</p></article>
          <div id="comments">
            <ol class="comment-list"><li>Great tips!</li></ol>
            <h3>Leave a reply</h3>
          </div>
        </body></html>
        """,
        # comment markup 2, one phrase
        {"comment_section": 3},
    ),
}


class TestClassify:
    """Weighted category classification."""

    def test_guest_post_page(self):
        url = "https://example.com/write-for-us"
        page = PageExtractor().extract(WRITE_FOR_US_HTML, url)

        result = PageClassifier().classify(url, page)

        assert result.category == "guest_post"
        assert not result.ambiguous
        assert not result.tied
        assert result.weight == max(result.weights.values())

    def test_classification_is_deterministic(self, resource_page_html):
        url = "https://gardenhub-links.org/resources"
        page = PageExtractor().extract(resource_page_html, url)
        classifier = PageClassifier()

        first = classifier.classify(url, page)
        second = classifier.classify(url, page)

        assert first == second
        assert first.category == "resource_page"

    @pytest.mark.parametrize("category", sorted(CATEGORY_PAGES))
    def test_characteristic_page(self, category):
        url, html, nonzero = CATEGORY_PAGES[category]
        page = PageExtractor().extract(html, url)
        classifier = PageClassifier()

        result = classifier.classify(url, page)

        assert result.category == category
        assert not result.ambiguous
        assert not result.tied
        assert result.weights == {c: nonzero.get(c, 0) for c in OPPORTUNITY_CATEGORIES}
        assert classifier.classify(url, PageExtractor().extract(html, url)) == result

    def test_plain_links_page_is_a_resource_page(self):
        page = ExtractedPage(url="https://gardenhub.org/links")
        result = PageClassifier().classify("https://gardenhub.org/links", page)

        assert result.category == "resource_page"
        assert result.weights["resource_page"] == 2
        assert result.weights["competitor_backlink"] == 0

    def test_no_signal_defaults_to_blog(self):
        result = PageClassifier().classify("https://quiet.org/", ExtractedPage(url="https://quiet.org/"))
        assert result.category == "blog"
        assert result.ambiguous

    def test_tie_resolves_to_blog(self):
        page = ExtractedPage(url="https://quiet.org/forum/comments")
        result = PageClassifier().classify("https://quiet.org/forum/comments", page)

        assert result.weights["forum"] == result.weights["comment_section"] == 2
        assert result.category == "blog"
        assert result.tied

    def test_outbound_links_favour_resource_pages(self):
        page = ExtractedPage(url="https://quiet.org/page", external_link_count=25)
        result = PageClassifier().classify("https://quiet.org/page", page)
        assert result.category == "resource_page"

    def test_comment_markup_favours_comment_section(self):
        page = ExtractedPage(url="https://quiet.org/p/1", has_comment_section=True)
        result = PageClassifier().classify("https://quiet.org/p/1", page)
        assert result.category == "comment_section"


# =============================================================================
# Pre-score
# =============================================================================

class TestPrescore:

    def test_write_for_us_prescore(self):
        page = PageExtractor().extract(WRITE_FOR_US_HTML, "https://example.com/write-for-us")
        # title 2 + description 2 + email 2 + high-value category 1
        assert PageClassifier().calculate_prescore(page, "guest_post") == 7

    def test_prescore_is_capped(self):
        page = ExtractedPage(
            url="https://gardenhub.org/",
            title="A perfectly sized page title",
            description="A description that is comfortably longer than fifty characters.",
            text="word " * 1200,
            emails=["team@gardenhub.org"],
            has_contact_form=True,
        )
        assert PageClassifier().calculate_prescore(page, "resource_page") == 10

    def test_empty_page_scores_zero(self):
        assert PageClassifier().calculate_prescore(ExtractedPage(url="https://a.org"), "blog") == 0


# =============================================================================
# Link scoring
# =============================================================================

class TestScoreLink:

    def test_promising_link(self):
        link = Link(url="https://gardenhub.org/resources", text="Resources")
        assert PageClassifier().score_link(link) == 5

    def test_deep_paths_are_penalised(self):
        link = Link(url="https://gardenhub.org/a/b/c/d/e", text="Read")
        assert PageClassifier().score_link(link) == -2

    def test_paging_links_are_penalised(self):
        plain = PageClassifier().score_link(Link(url="https://gardenhub.org/blog", text="Next"))
        paged = PageClassifier().score_link(Link(url="https://gardenhub.org/blog?page=2", text="Next"))
        assert paged == plain - 3
