"""
nORM - CSV Export
Client, alert and reputation exports
"""
import csv
from datetime import date, datetime
from io import StringIO
from typing import Any, Dict, Iterable, List, Optional

from norm.models.db_models import DBAlert, DBClient, DBReputationScore


def _csv_value(value: Any) -> Any:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return value


def array_to_csv(rows: List[Dict[str, Any]], headers: Optional[List[str]] = None) -> str:
    """
    Render a list of dicts as CSV: a header row then one line per record.

    Fields containing a comma, quote or line break are quoted with inner
    quotes doubled; None becomes an empty field. No rows gives ''.
    """
    if not rows:
        return ''

    headers = headers or list(rows[0].keys())
    sio = StringIO()
    writer = csv.writer(sio, quoting=csv.QUOTE_MINIMAL, lineterminator='\r\n')
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_value(row.get(header)) for header in headers])
    return sio.getvalue()


def _parse_iso(value: str) -> datetime:
    # fromisoformat only accepts a trailing Z from 3.11 on
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def format_date_for_csv(value) -> str:
    """YYYY-MM-DD, or '' for no date"""
    if not value:
        return ''
    if isinstance(value, str):
        value = _parse_iso(value)
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat() if isinstance(value, date) else ''


def format_datetime_for_csv(value) -> str:
    """ISO-8601 timestamp, or '' for no value"""
    if not value:
        return ''
    if isinstance(value, str):
        value = _parse_iso(value)
    return value.isoformat()


CLIENT_HEADERS = ['id', 'name', 'industry', 'website', 'monitoring_keywords', 'is_active', 'created_at']
ALERT_HEADERS = ['id', 'client_id', 'client_name', 'alert_type', 'severity', 'title', 'message',
                 'status', 'email_sent', 'created_at']
REPUTATION_HEADERS = ['client_id', 'client_name', 'score', 'serp', 'news', 'social', 'trend', 'volume',
                      'period_start', 'period_end', 'calculated_at']


def clients_to_csv(clients: Iterable[DBClient]) -> str:
    rows = [
        {
            'id': c.id,
            'name': c.name,
            'industry': c.industry,
            'website': c.website,
            'monitoring_keywords': ', '.join(c.get_monitoring_keywords()),
            'is_active': c.is_active,
            'created_at': format_datetime_for_csv(c.created_at)
        }
        for c in clients
    ]
    return array_to_csv(rows, CLIENT_HEADERS)


def alerts_to_csv(alerts: Iterable[DBAlert], client_names: Dict[str, str]) -> str:
    rows = [
        {
            'id': a.id,
            'client_id': a.client_id,
            'client_name': client_names.get(a.client_id, ''),
            'alert_type': a.alert_type,
            'severity': a.severity,
            'title': a.title,
            'message': a.message,
            'status': a.status,
            'email_sent': a.email_sent,
            'created_at': format_datetime_for_csv(a.created_at)
        }
        for a in alerts
    ]
    return array_to_csv(rows, ALERT_HEADERS)


def reputation_to_csv(scores: Iterable[DBReputationScore], client_names: Dict[str, str]) -> str:
    rows = []
    for s in scores:
        breakdown = s.breakdown
        rows.append({
            'client_id': s.client_id,
            'client_name': client_names.get(s.client_id, ''),
            'score': s.score,
            'serp': breakdown.get('serp'),
            'news': breakdown.get('news'),
            'social': breakdown.get('social'),
            'trend': breakdown.get('trend'),
            'volume': breakdown.get('volume'),
            'period_start': format_date_for_csv(s.period_start),
            'period_end': format_date_for_csv(s.period_end),
            'calculated_at': format_datetime_for_csv(s.calculated_at)
        })
    return array_to_csv(rows, REPUTATION_HEADERS)
