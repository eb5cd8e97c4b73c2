"""
Scraper backend exports.
"""

from app.scraping.scrapers.managed_api_scraper import ManagedApiScraper
from app.scraping.scrapers.render_scraper import HeadlessRenderScraper
from app.scraping.scrapers.static_scraper import StaticFetchScraper

__all__ = ["HeadlessRenderScraper", "ManagedApiScraper", "StaticFetchScraper"]
