"""
tests/test_html_parsers.py

Unit tests for HTMLParsingLayer.parse_page.

Coverage
--------
- Title, visible text and navigation labels
- Absolute links without fragments or non-http schemes
- Lazy images kept with a data-src marker
- Emails and phones from text and mailto/tel links
- Products from JSON-LD and product markup, with prices
"""

from __future__ import annotations

from app.scraping.parsing.html_parsers import HTMLParsingLayer

PAGE_URL = "https://acme.com/pricing"

HTML = """
<html>
  <head>
    <title> Acme   Pricing </title>
    <script type="application/ld+json">
      {"@type": "Product", "name": "Widget Pro", "offers": {"price": "49.00"}}
    </script>
  </head>
  <body>
    <nav><a href="/">Home</a><a href="/pricing#plans">Pricing</a></nav>
    <script>window.__STATE__ = "{{hidden}}";</script>
    <p>Write to sales@acme.com or call +1 (555) 123-4567 today.</p>
    <a href="mailto:Info@Acme.com?subject=hi">Email us</a>
    <a href="tel:+15551234567">Call</a>
    <a href="#top">Top</a>
    <a href="javascript:void(0)">Noop</a>
    <img src="/logo.png">
    <img src="/placeholder.gif" data-src="/img/hero.jpg">
    <div class="product"><h3>Basic</h3> Only €9 today</div>
    <div class="product-card"><h3>Starter</h3><span class="price">$19/mo</span></div>
  </body>
</html>
"""


class TestParsePage:
    def test_basic_fields(self) -> None:
        page = HTMLParsingLayer.parse_page(page_url=PAGE_URL, html=HTML, status_code=200, backend_id="static")

        assert page.success is True
        assert page.title == "Acme Pricing"
        assert page.status_code == 200
        assert page.backend_id == "static"
        assert page.navigation_items == ["Home", "Pricing"]
        assert "{{hidden}}" not in page.content
        assert "sales@acme.com" in page.content

    def test_links_are_absolute_and_filtered(self) -> None:
        page = HTMLParsingLayer.parse_page(page_url=PAGE_URL, html=HTML)

        assert page.links == ["https://acme.com/", "https://acme.com/pricing"]

    def test_lazy_images_are_marked(self) -> None:
        page = HTMLParsingLayer.parse_page(page_url=PAGE_URL, html=HTML)

        assert page.images == [
            "https://acme.com/logo.png",
            "data-src:https://acme.com/img/hero.jpg",
        ]

    def test_contact_info(self) -> None:
        page = HTMLParsingLayer.parse_page(page_url=PAGE_URL, html=HTML)

        assert page.contact_info["emails"] == ["sales@acme.com", "info@acme.com"]
        assert "+1 (555) 123-4567" in page.contact_info["phones"]
        assert "+15551234567" in page.contact_info["phones"]

    def test_products(self) -> None:
        page = HTMLParsingLayer.parse_page(page_url=PAGE_URL, html=HTML)

        assert page.products == [
            {"name": "Widget Pro", "price": "49.00", "page_url": PAGE_URL},
            {"name": "Basic", "price": "€9", "page_url": PAGE_URL},
            {"name": "Starter", "price": "$19/mo", "page_url": PAGE_URL},
        ]
        assert page.data_points == 3 + 4 + 2

    def test_malformed_json_ld_is_ignored(self) -> None:
        html = '<html><body><script type="application/ld+json">{not json</script><p>Hi</p></body></html>'

        page = HTMLParsingLayer.parse_page(page_url=PAGE_URL, html=html)

        assert page.products == []
        assert page.content == "Hi"
