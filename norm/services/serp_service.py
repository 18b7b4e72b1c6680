"""
nORM - SERP Tracking Service
Google result positions via SerpAPI and position-change detection
"""
import time
import logging
from typing import Any, Dict, List, Optional

import requests
from flask import current_app

from norm.database import db
from norm.errors import ExternalAPIError, RateLimitError
from norm.models.db_models import DBClient, DBKeyword, DBSERPResult
from norm.utils import domain_matches, extract_domain, utcnow

logger = logging.getLogger(__name__)

SERPAPI_URL = 'https://serpapi.com/search'


class SERPService:
    """
    Tracks where a client's own pages rank for its keywords.

    Each check stores every organic result. Results on the client's
    domain are flagged is_client_content; when the client does not rank
    at all a single client row with a null position is stored so the
    change detector can tell "dropped out" from "never checked".
    """

    # Pause between keywords of one client
    keyword_delay = 1.0

    @property
    def api_key(self):
        return current_app.config.get('SERPAPI_KEY', '')

    def check_serp_position(self, keyword: str, location: str = None) -> List[Dict[str, Any]]:
        """
        Query SerpAPI for keyword.

        Returns:
            [{'position': 1, 'url': str, 'title': str, 'snippet': str, 'domain': str}, ...]
        """
        if not self.api_key:
            raise ExternalAPIError('SerpAPI', 'API key not configured', upstream_status=401)

        config = current_app.config
        params = {
            'api_key': self.api_key,
            'q': keyword,
            'engine': 'google',
            'google_domain': config.get('SERP_GOOGLE_DOMAIN', 'google.com.br'),
            'location': location or config.get('SERP_LOCATION', 'Brazil'),
            'hl': config.get('SERP_LANGUAGE', 'pt-br'),
            'gl': config.get('SERP_COUNTRY', 'br'),
            'num': config.get('SERP_RESULT_COUNT', 100),
        }

        try:
            response = requests.get(SERPAPI_URL, params=params, timeout=30)
        except requests.RequestException as e:
            raise ExternalAPIError('SerpAPI', str(e))

        if response.status_code == 429:
            raise RateLimitError('SerpAPI rate limit exceeded')
        if response.status_code != 200:
            raise ExternalAPIError('SerpAPI', f'HTTP {response.status_code}: {response.text[:200]}',
                                   upstream_status=response.status_code)

        organic = response.json().get('organic_results') or []
        results = []
        for index, item in enumerate(organic):
            url = item.get('link') or ''
            results.append({
                'position': index + 1,
                'url': url,
                'title': item.get('title') or '',
                'snippet': item.get('snippet') or '',
                'domain': extract_domain(url) or ''
            })
        return results

    def track_serp_position(self, keyword: DBKeyword) -> List[DBSERPResult]:
        """Run one SERP check for keyword and store the results"""
        client = db.session.get(DBClient, keyword.client_id)
        client_domain = client.domain if client else None

        results = self.check_serp_position(keyword.keyword)
        checked_at = utcnow()

        rows = []
        for result in results:
            row = DBSERPResult(
                keyword_id=keyword.id,
                position=result['position'],
                url=result['url'],
                title=result['title'],
                snippet=result['snippet'],
                domain=result['domain'],
                is_client_content=domain_matches(result['url'], client_domain),
                checked_at=checked_at
            )
            db.session.add(row)
            rows.append(row)

        if client_domain and not any(row.is_client_content for row in rows):
            rows.append(self._not_ranking_row(keyword, client, checked_at))

        db.session.commit()

        client_rows = [r for r in rows if r.is_client_content and r.position is not None]
        logger.info(f"Tracked SERP for keyword '{keyword.keyword}': "
                    f"{len(results)} results, {len(client_rows)} client results")
        return rows

    def _not_ranking_row(self, keyword: DBKeyword, client: DBClient, checked_at) -> DBSERPResult:
        row = DBSERPResult(
            keyword_id=keyword.id,
            position=None,
            url=client.website or '',
            title=client.name,
            domain=client.domain or '',
            is_client_content=True,
            checked_at=checked_at
        )
        db.session.add(row)
        return row

    def track_client_serp_positions(self, client_id: str) -> Dict[str, Any]:
        """Track every active keyword of a client. A failing keyword is logged and skipped."""
        keywords = DBKeyword.query.filter_by(client_id=client_id, is_active=True).all()
        if not keywords:
            logger.info(f"No active keywords found for client: {client_id}")

        tracked = []
        errors = []
        for i, keyword in enumerate(keywords):
            try:
                self.track_serp_position(keyword)
                tracked.append(keyword)
            except Exception as e:
                db.session.rollback()
                logger.error(f"Failed to track keyword '{keyword.keyword}': {e}")
                errors.append({'keyword_id': keyword.id, 'error': str(e)})
            if self.keyword_delay and i < len(keywords) - 1:
                time.sleep(self.keyword_delay)

        return {'tracked': tracked, 'errors': errors}

    def detect_serp_changes(self, keyword_id: str, alert_threshold: int = 5) -> Dict[str, Any]:
        """
        Compare the client's position in the two most recent checks of a keyword.

        The client's best position per check is used. A change is flagged when
        the absolute difference exceeds alert_threshold; a missing check or a
        null position on either side never counts as a change.
        """
        rows = DBSERPResult.query.filter_by(
            keyword_id=keyword_id, is_client_content=True
        ).order_by(
            DBSERPResult.checked_at.desc(),
            DBSERPResult.position.is_(None),
            DBSERPResult.position.asc()
        ).limit(100).all()

        checks = []
        for row in rows:
            if checks and checks[-1].checked_at == row.checked_at:
                continue
            checks.append(row)
            if len(checks) == 2:
                break

        result = {
            'keyword_id': keyword_id,
            'has_change': False,
            'change': 0,
            'current_position': checks[0].position if checks else None,
            'previous_position': checks[1].position if len(checks) > 1 else None,
            'serp_result_id': checks[0].id if checks else None
        }

        if len(checks) < 2:
            return result

        current, previous = result['current_position'], result['previous_position']
        if current is None or previous is None:
            return result

        change = abs(current - previous)
        result['change'] = change
        result['has_change'] = change > alert_threshold
        return result

    def get_latest_results(self, client_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Latest check of every keyword: the client's position plus the top results"""
        summary = []
        keywords = DBKeyword.query.filter_by(client_id=client_id).order_by(DBKeyword.keyword).all()
        for keyword in keywords:
            latest: Optional[DBSERPResult] = DBSERPResult.query.filter_by(
                keyword_id=keyword.id
            ).order_by(DBSERPResult.checked_at.desc()).first()

            entry = {
                'keyword': keyword.to_dict(),
                'checked_at': None,
                'client_position': None,
                'results': []
            }
            if latest:
                rows = DBSERPResult.query.filter_by(
                    keyword_id=keyword.id, checked_at=latest.checked_at
                ).all()
                ranked = sorted((r for r in rows if r.position is not None), key=lambda r: r.position)
                client_positions = [r.position for r in ranked if r.is_client_content]
                entry['checked_at'] = latest.checked_at.isoformat()
                entry['client_position'] = client_positions[0] if client_positions else None
                entry['results'] = [r.to_dict() for r in ranked[:limit]]
            summary.append(entry)
        return summary


# Singleton instance
_serp_service = None


def get_serp_service() -> SERPService:
    """Get or create SERP service instance"""
    global _serp_service
    if _serp_service is None:
        _serp_service = SERPService()
    return _serp_service
