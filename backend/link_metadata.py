"""
Link Metadata Fetcher

Builds link previews (title, description, image, favicon) for URLs that
users paste into artist link folders.

Strategy:
1. Fetch the page directly and pull Open Graph / <title> / icon tags
2. If no title was found and a Firecrawl API key is configured, ask
   Firecrawl once and overlay whatever metadata it returns

Both attempts degrade the result on failure; they never raise.
"""

import re
import logging
from typing import Dict, Optional

import requests
from bs4 import BeautifulSoup

from config import METADATA_FETCH_TIMEOUT, METADATA_FALLBACK_TIMEOUT

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; MetaBot/1.0)'
FIRECRAWL_SCRAPE_URL = 'https://api.firecrawl.dev/v1/scrape'

FIELDS = ('title', 'description', 'image', 'favicon')


def normalize_url(url: str) -> str:
    """Trim the URL and prefix https:// when no http(s) scheme is present"""
    url = url.strip()
    if not url.startswith('http://') and not url.startswith('https://'):
        url = f'https://{url}'
    return url


def unescape_entities(text: Optional[str]) -> Optional[str]:
    """Undo the three entities seen in meta content, then trim"""
    if text is None:
        return None
    text = text.replace('&amp;', '&').replace('&quot;', '"').replace('&#39;', "'").strip()
    return text or None


def empty_result() -> Dict:
    return {'success': True, **{field: None for field in FIELDS}}


# ============================================================================
# EXTRACTORS
# ============================================================================

class MetaExtractor:
    """Pulls preview fields out of raw HTML"""

    def extract(self, html: str) -> Dict[str, Optional[str]]:
        raise NotImplementedError


class RegexMetaExtractor(MetaExtractor):
    """Pattern-matching extractor; tolerant of broken markup"""

    PATTERNS = {
        'title': [
            re.compile(r'<meta[^>]+property=["\']og:title["\'][^>]+content=["\']([^"\']+)["\']', re.I),
            re.compile(r'<title[^>]*>([^<]+)</title>', re.I),
        ],
        'description': [
            re.compile(r'<meta[^>]+property=["\']og:description["\'][^>]+content=["\']([^"\']+)["\']', re.I),
            re.compile(r'<meta[^>]+name=["\']description["\'][^>]+content=["\']([^"\']+)["\']', re.I),
        ],
        'image': [
            re.compile(r'<meta[^>]+property=["\']og:image["\'][^>]+content=["\']([^"\']+)["\']', re.I),
        ],
        'favicon': [
            re.compile(r'<link[^>]+rel=["\']icon["\'][^>]+href=["\']([^"\']+)["\']', re.I),
        ],
    }

    def extract(self, html):
        result = {}
        for field, patterns in self.PATTERNS.items():
            result[field] = None
            for pattern in patterns:
                match = pattern.search(html)
                value = unescape_entities(match.group(1)) if match else None
                if value:
                    result[field] = value
                    break
        return result


class SoupMetaExtractor(MetaExtractor):
    """BeautifulSoup extractor; handles attribute order and quoting freely"""

    def extract(self, html):
        soup = BeautifulSoup(html, 'html.parser')

        def meta(attr, name):
            tag = soup.find('meta', attrs={attr: name})
            return unescape_entities(tag.get('content')) if tag else None

        title = meta('property', 'og:title')
        if not title and soup.title and soup.title.string:
            title = unescape_entities(soup.title.string)

        favicon = None
        for link in soup.find_all('link', href=True):
            rel = link.get('rel') or []
            if 'icon' in [r.lower() for r in rel]:
                favicon = unescape_entities(link['href'])
                break

        return {
            'title': title,
            'description': meta('property', 'og:description') or meta('name', 'description'),
            'image': meta('property', 'og:image'),
            'favicon': favicon,
        }


# ============================================================================
# FETCHER
# ============================================================================

class LinkMetadataFetcher:
    """
    Fetch link preview metadata with a scraping-API fallback.

    Args:
        extractor: MetaExtractor used on the directly fetched HTML
        firecrawl_api_key: Enables the fallback when set
        session: requests-compatible session (module `requests` by default)
    """

    def __init__(self, extractor: MetaExtractor = None, firecrawl_api_key: str = None,
                 session=None):
        self.extractor = extractor or RegexMetaExtractor()
        self.firecrawl_api_key = firecrawl_api_key
        self.session = session or requests

    def fetch_from_html(self, url: str) -> Dict:
        """Direct fetch; any failure leaves the fields empty"""
        result = empty_result()
        try:
            response = self.session.get(
                url,
                headers={'User-Agent': USER_AGENT},
                timeout=METADATA_FETCH_TIMEOUT,
                allow_redirects=True,
            )
            result.update(self.extractor.extract(response.text))
        except Exception as e:
            logger.info(f"HTML fetch failed for {url}: {e}")
        return result

    def fetch_from_firecrawl(self, url: str, partial: Dict) -> Dict:
        """Overlay Firecrawl metadata on a partial result"""
        try:
            response = self.session.post(
                FIRECRAWL_SCRAPE_URL,
                headers={
                    'Authorization': f'Bearer {self.firecrawl_api_key}',
                    'Content-Type': 'application/json',
                },
                json={
                    'url': url,
                    'formats': ['markdown'],
                    'onlyMainContent': False,
                    'waitFor': 1000,
                    'timeout': 10000,
                },
                timeout=METADATA_FALLBACK_TIMEOUT,
            )
            if not response.ok:
                logger.info(f"Firecrawl fallback returned {response.status_code} for {url}")
                return partial

            data = response.json() or {}
            metadata = (data.get('data') or {}).get('metadata') or data.get('metadata') or {}
            return {
                'success': True,
                'title': metadata.get('title') or metadata.get('ogTitle') or partial['title'],
                'description': metadata.get('description') or metadata.get('ogDescription') or partial['description'],
                'image': metadata.get('ogImage') or metadata.get('image') or partial['image'],
                'favicon': metadata.get('favicon') or partial['favicon'],
            }
        except Exception as e:
            logger.info(f"Firecrawl fallback skipped for {url}: {e}")
            return partial

    def fetch(self, url: str) -> Dict:
        """
        Best-effort metadata for a URL

        Args:
            url: URL as typed by the user (scheme optional)

        Returns:
            {success, title, description, image, favicon}
        """
        url = normalize_url(url)
        logger.info(f"Fetching metadata for: {url}")

        result = self.fetch_from_html(url)

        if not result['title'] and self.firecrawl_api_key:
            result = self.fetch_from_firecrawl(url, result)

        logger.info(f"Metadata result for {url}: title={result['title']!r}")
        return result
