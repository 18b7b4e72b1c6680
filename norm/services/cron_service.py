"""
nORM - Cron Jobs
Per-client fan-out loops shared by the /api/cron endpoints and the scheduler

Every job walks its work list sequentially. A failing item is logged,
rolled back and counted; the loop then moves on to the next item.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List

from flask import current_app

from norm.database import db
from norm.errors import ExternalAPIError
from norm.models.db_models import (
    DBAlert, DBClient, DBGeneratedContent, DBKeyword, DBNewsMention, DBSocialAccount,
    AlertSeverity, AlertStatus
)
from norm.services.ai_service import get_ai_service
from norm.services.alert_service import (
    create_serp_change_alert, generate_alerts_for_client, get_alert_recipients, get_dashboard_url,
    notifiable_client_ids
)
from norm.services.email_service import get_email_service
from norm.services.news_service import get_news_service
from norm.services.reputation_service import get_latest_score, record_reputation_score
from norm.services.serp_service import get_serp_service
from norm.services.social_service import get_social_service
from norm.utils import utcnow

logger = logging.getLogger(__name__)

REPUTATION_PERIOD_DAYS = 30
SEND_ALERTS_BATCH = 20
AUTO_CONTENT_BATCH = 10
MAX_ERROR_DETAILS = 20


@dataclass
class JobResult:
    """Aggregate outcome of one cron run"""
    job: str
    unit: str
    total: int = 0
    processed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    counters: Dict[str, int] = field(default_factory=dict)

    def count(self, name: str, amount: int = 1):
        self.counters[name] = self.counters.get(name, 0) + amount

    def fail(self, item_id: str, error: Exception):
        self.errors.append({'id': item_id, 'error': str(error)})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': 'completed',
            'job': self.job,
            f'{self.unit}_processed': self.processed,
            f'total_{self.unit}': self.total,
            **self.counters,
            'errors': len(self.errors),
            'error_details': self.errors[:MAX_ERROR_DETAILS]
        }


def _fan_out(result: JobResult, items: List[Any], work: Callable[[Any], None]) -> JobResult:
    """Run work on every item, isolating failures"""
    result.total = len(items)
    for item in items:
        try:
            work(item)
            result.processed += 1
        except Exception as e:
            db.session.rollback()
            logger.error(f"{result.job}: failed on {item.id}: {e}", exc_info=not isinstance(e, ExternalAPIError))
            result.fail(item.id, e)

    logger.info(f"{result.job} finished: {result.processed}/{result.total} processed, "
                f"{len(result.errors)} errors, {result.counters}")
    return result


def _active_clients() -> List[DBClient]:
    return DBClient.query.filter_by(is_active=True).order_by(DBClient.created_at).all()


# ==========================================
# Jobs
# ==========================================

def run_check_serp() -> JobResult:
    """Track SERP positions of every active client and alert on large movements"""
    serp = get_serp_service()
    result = JobResult(job='check-serp', unit='clients')
    result.counters = {'keywords_tracked': 0, 'alerts_created': 0}

    def work(client: DBClient):
        tracking = serp.track_client_serp_positions(client.id)
        result.count('keywords_tracked', len(tracking['tracked']))

        for keyword in tracking['tracked']:
            change = serp.detect_serp_changes(keyword.id, keyword.alert_threshold)
            if change['has_change']:
                create_serp_change_alert(keyword, change)
                result.count('alerts_created')
        db.session.commit()

    return _fan_out(result, _active_clients(), work)


def run_calculate_reputation() -> JobResult:
    """Append a 30-day reputation snapshot per client and generate alerts"""
    result = JobResult(job='calculate-reputation', unit='clients')
    result.counters = {'alerts_generated': 0}

    def work(client: DBClient):
        now = utcnow()
        previous = get_latest_score(client.id)
        snapshot = record_reputation_score(client.id, now - timedelta(days=REPUTATION_PERIOD_DAYS), now)

        comparison = None
        if previous is not None:
            comparison = {'current': snapshot.score, 'previous': previous.score}

        alerts = generate_alerts_for_client(client.id, score_comparison=comparison, now=now)
        result.count('alerts_generated', len(alerts))

    return _fan_out(result, _active_clients(), work)


def run_sync_social() -> JobResult:
    """Pull new mentions for every active social account"""
    social = get_social_service()
    result = JobResult(job='sync-social', unit='accounts')
    result.counters = {'posts_created': 0}

    accounts = DBSocialAccount.query.join(
        DBClient, DBClient.id == DBSocialAccount.client_id
    ).filter(
        DBSocialAccount.is_active.is_(True),
        DBClient.is_active.is_(True)
    ).all()

    def work(account: DBSocialAccount):
        stats = social.sync_account(account)
        result.count('posts_created', stats['inserted'])

    return _fan_out(result, accounts, work)


def run_scrape_news() -> JobResult:
    """Search news for each client's monitoring keywords"""
    news = get_news_service()
    result = JobResult(job='scrape-news', unit='clients')
    result.counters = {'mentions_created': 0}

    clients = [c for c in _active_clients() if c.get_monitoring_keywords()]

    def work(client: DBClient):
        stats = news.scrape_client_news(client)
        result.count('mentions_created', stats['inserted'])

    return _fan_out(result, clients, work)


def run_send_alerts() -> JobResult:
    """Email pending high and critical alerts to the client's admins and editors"""
    email = get_email_service()
    app_url = current_app.config.get('APP_URL', '')
    result = JobResult(job='send-alerts', unit='alerts')
    result.counters = {'alerts_sent': 0, 'emails_sent': 0}

    alerts = DBAlert.query.filter(
        DBAlert.status == AlertStatus.ACTIVE,
        DBAlert.email_sent.is_(False),
        DBAlert.severity.in_([AlertSeverity.HIGH, AlertSeverity.CRITICAL]),
        DBAlert.client_id.in_(notifiable_client_ids())
    ).order_by(DBAlert.created_at).limit(SEND_ALERTS_BATCH).all()

    def work(alert: DBAlert):
        client = db.session.get(DBClient, alert.client_id)
        if client is None:
            raise ValueError(f"Client {alert.client_id} not found")

        recipients = get_alert_recipients(client.id)
        if not recipients:
            logger.warning(f"No recipients found for client {client.id} alerts")
            return

        dashboard_url = get_dashboard_url(app_url, client)
        sent = 0
        for to in recipients:
            if email.send_alert_email(to, alert, client.name, dashboard_url):
                sent += 1

        if sent:
            alert.email_sent = True
            alert.email_sent_at = utcnow()
            db.session.commit()
            result.count('alerts_sent')
            result.count('emails_sent', sent)

    return _fan_out(result, alerts, work)


def run_auto_generate_content() -> JobResult:
    """Draft one counter article for each recent critical or high alert"""
    ai = get_ai_service()
    result = JobResult(job='auto-generate-content', unit='alerts')
    result.counters = {'content_generated': 0}

    since = utcnow() - timedelta(hours=24)
    covered = db.select(DBGeneratedContent.trigger_alert_id).where(
        DBGeneratedContent.trigger_alert_id.isnot(None)
    )
    alerts = DBAlert.query.filter(
        DBAlert.status == AlertStatus.ACTIVE,
        DBAlert.severity.in_([AlertSeverity.HIGH, AlertSeverity.CRITICAL]),
        DBAlert.created_at >= since,
        DBAlert.id.notin_(covered)
    ).order_by(DBAlert.created_at.desc()).limit(AUTO_CONTENT_BATCH).all()

    def work(alert: DBAlert):
        client = db.session.get(DBClient, alert.client_id)
        if client is None:
            raise ValueError(f"Client {alert.client_id} not found")

        mention = db.session.get(DBNewsMention, alert.related_mention_id) if alert.related_mention_id else None
        keywords = [k.keyword for k in DBKeyword.query.filter_by(client_id=client.id, is_active=True).limit(5)]
        keywords = keywords or client.get_monitoring_keywords()[:5] or [client.name]

        articles = ai.generate_content(
            client_name=client.name,
            topic=mention.title if mention else alert.title,
            target_keywords=keywords,
            article_count=1,
            trigger_title=mention.title if mention else alert.title,
            trigger_url=mention.url if mention else None
        )
        if not articles:
            raise ExternalAPIError('OpenAI', 'No article generated')

        for article in articles:
            db.session.add(DBGeneratedContent(
                client_id=client.id,
                title=article['title'],
                body=article['body'],
                meta_description=article['meta_description'],
                target_keywords=article['target_keywords'],
                seo_score=article['seo_score'],
                sentiment_score=article.get('sentiment_score'),
                word_count=article['word_count'],
                trigger_alert_id=alert.id,
                trigger_mention_id=mention.id if mention else None
            ))
        db.session.commit()
        result.count('content_generated', len(articles))

    return _fan_out(result, alerts, work)


JOBS = {
    'check-serp': run_check_serp,
    'calculate-reputation': run_calculate_reputation,
    'sync-social': run_sync_social,
    'scrape-news': run_scrape_news,
    'send-alerts': run_send_alerts,
    'auto-generate-content': run_auto_generate_content,
}


def run_job(name: str) -> JobResult:
    logger.info(f"Starting cron job {name}")
    return JOBS[name]()
