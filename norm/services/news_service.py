"""
nORM - News Monitoring Service
Searches Google News RSS for client mentions and stores them with sentiment
"""
import re
import logging
import xml.etree.ElementTree as ET
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional
from urllib.parse import quote_plus

import requests
from flask import current_app

from norm.database import db
from norm.errors import ExternalAPIError, RateLimitError
from norm.models.db_models import DBClient, DBNewsMention
from norm.services.ai_service import get_ai_service
from norm.utils import utcnow

logger = logging.getLogger(__name__)

GOOGLE_NEWS_RSS = 'https://news.google.com/rss/search'
USER_AGENT = 'Mozilla/5.0 (compatible; nORM/1.0)'

_HREF_RE = re.compile(r'<a href="([^"]+)"')
_TAG_RE = re.compile(r'<[^>]*>')


def _parse_pub_date(value: Optional[str]):
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_news_feed(xml_text: str, max_results: int = 20) -> List[Dict]:
    """Articles from a Google News RSS document"""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ExternalAPIError('Google News', f'Invalid RSS feed: {e}')

    articles = []
    for item in root.iter('item'):
        if len(articles) >= max_results:
            break
        title = (item.findtext('title') or '').strip()
        link = (item.findtext('link') or '').strip()
        description = item.findtext('description') or ''

        # Google News links are redirects; the description carries the real URL
        match = _HREF_RE.search(description)
        url = match.group(1) if match else link
        if not url:
            continue

        articles.append({
            'title': title,
            'url': url,
            'excerpt': _TAG_RE.sub('', description).strip(),
            'source': (item.findtext('source') or '').strip(),
            'published_at': _parse_pub_date(item.findtext('pubDate'))
        })
    return articles


class NewsService:
    """Google News monitoring for client search terms"""

    def search_google_news(self, query: str, max_results: int = 20) -> List[Dict]:
        config = current_app.config
        language = config.get('NEWS_LANGUAGE', 'pt-BR')
        country = config.get('NEWS_COUNTRY', 'BR')
        url = (f"{GOOGLE_NEWS_RSS}?q={quote_plus(query)}"
               f"&hl={language}&gl={country}&ceid={country}:pt-419")

        try:
            response = requests.get(url, headers={'User-Agent': USER_AGENT}, timeout=30)
        except requests.RequestException as e:
            raise ExternalAPIError('Google News', str(e))

        if response.status_code == 429:
            raise RateLimitError('Google News rate limit exceeded')
        if response.status_code != 200:
            raise ExternalAPIError('Google News', f'HTTP {response.status_code}',
                                   upstream_status=response.status_code)

        return parse_news_feed(response.text, max_results=max_results)

    def scrape_client_news(self, client: DBClient) -> Dict[str, int]:
        """
        Search every monitoring term of a client, classify new articles and store them.

        Articles whose URL is already stored for the client are skipped.
        A failing term is logged and the next term is tried.

        Returns:
            {'terms': int, 'found': int, 'inserted': int, 'errors': int}
        """
        terms = client.get_monitoring_keywords()
        per_term = current_app.config.get('NEWS_ARTICLES_PER_TERM', 10)
        ai = get_ai_service()

        stats = {'terms': len(terms), 'found': 0, 'inserted': 0, 'errors': 0}
        seen_urls = set()

        for term in terms:
            try:
                articles = self.search_google_news(term, max_results=per_term)
            except (ExternalAPIError, RateLimitError) as e:
                stats['errors'] += 1
                logger.warning(f"News search failed for '{term}' (client {client.id}): {e}")
                continue

            stats['found'] += len(articles)
            for article in articles:
                if article['url'] in seen_urls:
                    continue
                seen_urls.add(article['url'])

                exists = DBNewsMention.query.filter_by(client_id=client.id, url=article['url']).first()
                if exists:
                    continue

                sentiment = ai.analyze_sentiment(f"{article['title']}\n\n{article['excerpt']}")
                db.session.add(DBNewsMention(
                    client_id=client.id,
                    title=article['title'] or article['url'],
                    url=article['url'],
                    excerpt=article['excerpt'],
                    source=article['source'],
                    search_term=term,
                    published_at=article['published_at'],
                    sentiment=sentiment['sentiment'],
                    sentiment_score=sentiment['score'],
                    sentiment_confidence=sentiment['confidence'],
                    sentiment_rationale=sentiment['rationale']
                ))
                stats['inserted'] += 1

        client.last_news_scraped_at = utcnow()
        db.session.commit()
        logger.info(f"News scrape for {client.name}: {stats}")
        return stats


# Singleton instance
_news_service = None


def get_news_service() -> NewsService:
    """Get or create news service instance"""
    global _news_service
    if _news_service is None:
        _news_service = NewsService()
    return _news_service
