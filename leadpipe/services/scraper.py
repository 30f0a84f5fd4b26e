"""
HTTP scraper — requests + BeautifulSoup implementation of the Scraper capability.

Extracts headings and paragraphs as raw text, the meta description, links to
social profiles and a rough guess at the site's technology stack.
"""
import logging
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from leadpipe.pipeline.base import (
    Scraper, ScrapeResult, FetchError, ScrapeTimeout, ErrorKind, RAW_TEXT_LIMIT,
)

logger = logging.getLogger('services.scraper')

SOCIAL_DOMAINS = [
    'twitter.com', 'x.com', 'linkedin.com', 'facebook.com',
    'instagram.com', 'github.com', 'youtube.com',
]

# (category, technology, CSS selector) — first match per category wins
TECH_SIGNALS = [
    ('Framework', 'Next.js', '#__next'),
    ('Framework', 'Gatsby', 'div[id^="gatsby"]'),
    ('Framework', 'Nuxt', '#__nuxt'),
    ('CMS', 'WordPress', 'script[src*="wp-content"], link[href*="wp-content"]'),
    ('CMS', 'Wix', 'script[src*="wix"]'),
    ('CMS', 'Squarespace', 'script[src*="squarespace"]'),
    ('CMS', 'Webflow', 'html[data-wf-site]'),
    ('E-commerce', 'Shopify', 'script[src*="shopify"]'),
    ('Analytics', 'Google Analytics', 'script[src*="googletagmanager"], script[src*="google-analytics"]'),
    ('Chat', 'Intercom', 'script[src*="intercom"]'),
    ('CRM', 'HubSpot', 'script[src*="hs-scripts"], script[src*="hubspot"]'),
]

HEADERS = {
    'User-Agent': 'Mozilla/5.0 (compatible; leadpipe/1.0; +https://example.com/bot)',
    'Accept': 'text/html,application/xhtml+xml',
}


class HttpScraper(Scraper):
    """Fetches the lead's homepage with a bounded timeout."""

    def __init__(self, timeout=30, session=None, breaker=None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.breaker = breaker

    def scrape(self, domain: str) -> ScrapeResult:
        if self.breaker is not None:
            return self.breaker.call(self._scrape, domain)
        return self._scrape(domain)

    def _scrape(self, domain):
        url = domain if domain.startswith('http') else f'https://{domain}'
        logger.info("Navigating to %s", url)
        html = self._fetch(url)
        return extract(html)

    def _fetch(self, url):
        try:
            resp = self.session.get(url, headers=HEADERS, timeout=self.timeout, allow_redirects=True)
        except requests.Timeout as e:
            raise ScrapeTimeout(f"Timed out after {self.timeout}s fetching {url}") from e
        except requests.RequestException as e:
            raise FetchError(f"Could not fetch {url}: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise FetchError(f"{url} returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            # Other 4xx: generic failure (lead FAILED, still retried per job policy);
            # not counted by the circuit breaker
            raise FetchError(f"{url} returned HTTP {resp.status_code}", kind=ErrorKind.GENERIC)
        return resp.text

    def close(self):
        self.session.close()


def extract(html) -> ScrapeResult:
    """Pull text, meta description, social links and tech signals out of a page."""
    soup = BeautifulSoup(html or '', 'html.parser')

    meta = (
        soup.find('meta', attrs={'name': 'description'})
        or soup.find('meta', attrs={'property': 'og:description'})
    )
    meta_description = meta.get('content') if meta else None

    chunks = []
    for el in soup.find_all(['h1', 'h2', 'h3', 'p']):
        text = el.get_text(' ', strip=True)
        if text:
            chunks.append(text)
    raw_text = '\n\n'.join(chunks)[:RAW_TEXT_LIMIT]

    social_links = []
    for a in soup.find_all('a', href=True):
        href = a['href']
        if _is_social(href):
            social_links.append(href)

    tech_stack = {}
    for category, tech, selector in TECH_SIGNALS:
        if category in tech_stack:
            continue
        if soup.select_one(selector) is not None:
            tech_stack[category] = tech

    return ScrapeResult(
        raw_text=raw_text,
        meta_description=meta_description or None,
        social_links=social_links,
        tech_stack=tech_stack,
    )


def _is_social(href):
    host = urlparse(href).netloc.lower()
    if host.startswith('www.'):
        host = host[4:]
    return any(host == d or host.endswith('.' + d) for d in SOCIAL_DOMAINS)
