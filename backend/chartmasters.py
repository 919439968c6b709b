"""
ChartMasters Performance Scraper

Scrapes the ChartMasters artist dashboard (via Firecrawl, which renders the
page to markdown) and parses streaming totals and estimated revenue.

Used by:
- routes/performance.py (POST /scrape-chartmasters)
"""

import re
import json
import math
import logging
from dataclasses import dataclass, asdict

import requests

logger = logging.getLogger(__name__)

FIRECRAWL_SCRAPE_URL = 'https://api.firecrawl.dev/v1/scrape'
DASHBOARD_URL = 'https://chartmasters.org/artist/{spotify_id}'

SUFFIX_MULTIPLIERS = {'t': 10 ** 12, 'b': 10 ** 9, 'm': 10 ** 6, 'k': 10 ** 3}

_NUMBER = r'([\d.$]+[mkbt]?)'
LEAD_RE = re.compile(rf'^Lead streams\s+{_NUMBER}', re.I)
FEAT_RE = re.compile(rf'^Feat streams\s+{_NUMBER}', re.I)
DAILY_RE = re.compile(rf'^Daily streams\s+{_NUMBER}', re.I)
MONTHLY_STREAMS_RE = re.compile(rf'^Monthly streams\s+{_NUMBER}', re.I)
MONTHLY_LISTENERS_RE = re.compile(rf'^Monthly listeners\s+{_NUMBER}', re.I)
MONTHLY_REVENUE_RE = re.compile(rf'^Monthly revenue\s+\$?{_NUMBER}', re.I)
ARTIST_NAME_RE = re.compile(r'# Artist dashboard[\s\S]*?# ([^\n]+)')
ON_DEMAND_RE = re.compile(r'on-demand audio streams', re.I)
SECTION_RE = re.compile(r'^(Sales|Social Media|Databases|Trends|Rankings|Milestones)', re.I)


class ScrapeError(Exception):
    """Raised when the scraping service returns an error"""
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class ArtistMismatchError(Exception):
    """Raised when ChartMasters returned a different artist than requested"""
    def __init__(self, ours: str, theirs: str):
        self.ours = ours
        self.theirs = theirs
        super().__init__(
            f'ChartMasters returned data for "{theirs}" instead of "{ours}". '
            f'This artist may not be indexed correctly on ChartMasters.'
        )


@dataclass
class PerformanceData:
    chartmasters_artist_name: str = ''
    lead_streams_total: int = 0
    feat_streams_total: int = 0
    daily_streams: int = 0
    monthly_streams: int = 0
    monthly_listeners_all: int = 0
    est_monthly_revenue: int = 0
    raw_markdown: str = ''

    def to_dict(self):
        return asdict(self)


def parse_number(raw: str) -> int:
    """
    Parse dashboard figures like "335.1m", "$26.1k", "1,204" or "2b"

    Returns:
        Rounded integer value, 0 when the text is not a number
    """
    cleaned = re.sub(r'[$,]', '', raw or '').strip()
    match = re.match(r'^([\d.]+)\s*([mkbt])?$', cleaned, re.I)
    if not match:
        return 0
    try:
        base = float(match.group(1))
    except ValueError:
        return 0
    suffix = (match.group(2) or '').lower()
    return int(math.floor(base * SUFFIX_MULTIPLIERS.get(suffix, 1) + 0.5))


def parse_chartmasters_markdown(markdown: str) -> PerformanceData:
    """
    Parse the dashboard markdown

    The "Spotify statistics" block comes first; the "On-demand audio
    streams" block later carries all-platform totals, listeners and revenue
    and overrides the earlier lead/feat totals.
    """
    data = PerformanceData(raw_markdown=markdown)

    name_match = ARTIST_NAME_RE.search(markdown)
    if name_match:
        data.chartmasters_artist_name = name_match.group(1).strip()

    in_on_demand = False
    for raw_line in markdown.split('\n'):
        line = raw_line.strip()

        if ON_DEMAND_RE.search(line):
            in_on_demand = True
            continue
        if SECTION_RE.match(line):
            in_on_demand = False

        if not in_on_demand:
            m = LEAD_RE.match(line)
            if m and data.lead_streams_total == 0:
                data.lead_streams_total = parse_number(m.group(1))
                continue
            m = FEAT_RE.match(line)
            if m and data.feat_streams_total == 0:
                data.feat_streams_total = parse_number(m.group(1))
                continue

        m = DAILY_RE.match(line)
        if m:
            data.daily_streams = parse_number(m.group(1))
            continue
        m = MONTHLY_STREAMS_RE.match(line)
        if m:
            data.monthly_streams = parse_number(m.group(1))
            continue

        if in_on_demand:
            for pattern, field in ((LEAD_RE, 'lead_streams_total'),
                                   (FEAT_RE, 'feat_streams_total'),
                                   (MONTHLY_LISTENERS_RE, 'monthly_listeners_all'),
                                   (MONTHLY_REVENUE_RE, 'est_monthly_revenue')):
                m = pattern.match(line)
                if m:
                    setattr(data, field, parse_number(m.group(1)))
                    break

    return data


def normalize_name(name: str) -> str:
    return re.sub(r'[^a-z0-9]', '', (name or '').lower())


def names_match(ours: str, theirs: str) -> bool:
    """True when either normalized name contains the other (or one is empty)"""
    a, b = normalize_name(ours), normalize_name(theirs)
    if not a or not b:
        return True
    return a in b or b in a


def scrape_artist_dashboard(spotify_id: str, api_key: str, session=None) -> str:
    """
    Render the ChartMasters dashboard to markdown via Firecrawl

    Retries once when Firecrawl times out (408) or fails server-side (5xx).

    Returns:
        Markdown text ('' when Firecrawl returned no content)

    Raises:
        ScrapeError: non-success response after the retry
    """
    session = session or requests
    url = DASHBOARD_URL.format(spotify_id=spotify_id)
    logger.info(f"Scraping ChartMasters: {url}")

    def do_scrape():
        return session.post(
            FIRECRAWL_SCRAPE_URL,
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            json={
                'url': url,
                'formats': ['markdown'],
                'onlyMainContent': True,
                'waitFor': 5000,
                'timeout': 60000,
            },
        )

    response = do_scrape()
    if not response.ok and (response.status_code == 408 or response.status_code >= 500):
        logger.warning(f"Firecrawl returned {response.status_code}, retrying once...")
        response = do_scrape()

    try:
        result = response.json() or {}
    except ValueError:
        result = {'body': response.text}

    if not response.ok:
        raise ScrapeError(f"Firecrawl error {response.status_code}: {json.dumps(result)}",
                          response.status_code)

    return (result.get('data') or {}).get('markdown') or result.get('markdown') or ''


def fetch_performance(spotify_id: str, artist_name: str, api_key: str, session=None) -> PerformanceData:
    """
    Scrape and parse one artist, verifying ChartMasters returned that artist

    Returns:
        PerformanceData, or None when ChartMasters returned nothing

    Raises:
        ScrapeError, ArtistMismatchError
    """
    markdown = scrape_artist_dashboard(spotify_id, api_key, session=session)
    if not markdown:
        return None

    data = parse_chartmasters_markdown(markdown)

    if artist_name and data.chartmasters_artist_name and \
            not names_match(artist_name, data.chartmasters_artist_name):
        logger.warning(f'Artist name mismatch: ours="{artist_name}", '
                       f'ChartMasters="{data.chartmasters_artist_name}"')
        raise ArtistMismatchError(artist_name, data.chartmasters_artist_name)

    logger.info(f"Parsed performance data for {data.chartmasters_artist_name or spotify_id}: "
                f"lead={data.lead_streams_total} monthly={data.monthly_streams} "
                f"revenue={data.est_monthly_revenue}")
    return data
