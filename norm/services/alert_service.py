"""
nORM - Alert Service
Turns score drops, negative mentions and SERP movements into client alerts
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from norm.database import db
from norm.errors import NotFoundError, ValidationError
from norm.models.db_models import (
    DBAlert, DBClient, DBClientUser, DBKeyword, DBNewsMention, DBSERPResult, DBSocialAccount,
    DBSocialPost, DBUser, AlertSeverity, AlertStatus, AlertType, ClientRole, Sentiment
)
from norm.utils import utcnow

logger = logging.getLogger(__name__)

# Score drop (in points) that raises a score_drop alert
SCORE_DROP_ALERT_THRESHOLD = 3
RECENT_WINDOW = timedelta(hours=24)
TOP_POSITIONS = 3


def get_severity_from_score_drop(score_drop: float) -> str:
    """Map a score drop (or SERP position delta) to a severity"""
    if score_drop >= 10:
        return AlertSeverity.CRITICAL
    if score_drop >= 5:
        return AlertSeverity.HIGH
    if score_drop >= 3:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def create_serp_change_alert(keyword: DBKeyword, change: Dict[str, Any]) -> DBAlert:
    """Insert a serp_change alert for a detected position change. Caller commits."""
    previous = change['previous_position']
    current = change['current_position']
    direction = 'dropped' if current > previous else 'rose'

    alert = DBAlert(
        client_id=keyword.client_id,
        alert_type=AlertType.SERP_CHANGE,
        severity=get_severity_from_score_drop(change['change']),
        title=f'SERP position change for "{keyword.keyword}"',
        message=f"Position {direction} from {previous} to {current} ({change['change']} positions).",
        related_serp_result_id=change.get('serp_result_id')
    )
    db.session.add(alert)
    return alert


class AlertGenerator:
    """
    Checks one client for alert conditions.

    Every check only looks at fresh data and skips items that already have
    an alert, so running it repeatedly never duplicates mention alerts.
    """

    def __init__(self, client_id: str, now: Optional[datetime] = None):
        self.client_id = client_id
        self.now = now or utcnow()
        self.since = self.now - RECENT_WINDOW

    def score_drop_alerts(self, score_comparison: Optional[Dict[str, float]]) -> List[DBAlert]:
        if not score_comparison:
            return []

        previous = score_comparison['previous']
        current = score_comparison['current']
        drop = previous - current
        if drop < SCORE_DROP_ALERT_THRESHOLD:
            return []

        severity = get_severity_from_score_drop(drop)
        return [DBAlert(
            client_id=self.client_id,
            alert_type=AlertType.CRITICAL if severity == AlertSeverity.CRITICAL else AlertType.SCORE_DROP,
            severity=severity,
            title=f"Reputation Score Drop: -{drop:.1f} points",
            message=f"Your reputation score dropped from {previous} to {current}.",
            created_at=self.now
        )]

    def negative_news_alerts(self) -> List[DBAlert]:
        mentions = DBNewsMention.query.filter(
            DBNewsMention.client_id == self.client_id,
            DBNewsMention.sentiment == Sentiment.NEGATIVE,
            DBNewsMention.scraped_at >= self.since
        ).all()
        if not mentions:
            return []

        alerted = self._alerted_ids(DBAlert.related_mention_id, [m.id for m in mentions])
        return [
            DBAlert(
                client_id=self.client_id,
                alert_type=AlertType.NEGATIVE_MENTION,
                severity=AlertSeverity.HIGH,
                title=f"Negative Mention Detected: {mention.source or 'news'}",
                message=f'A negative article titled "{mention.title}" was detected.',
                related_mention_id=mention.id,
                created_at=self.now
            )
            for mention in mentions if mention.id not in alerted
        ]

    def negative_social_alerts(self) -> List[DBAlert]:
        posts = DBSocialPost.query.join(
            DBSocialAccount, DBSocialAccount.id == DBSocialPost.social_account_id
        ).filter(
            DBSocialAccount.client_id == self.client_id,
            DBSocialAccount.is_active.is_(True),
            DBSocialPost.sentiment == Sentiment.NEGATIVE,
            DBSocialPost.published_at >= self.since
        ).all()
        if not posts:
            return []

        alerted = self._alerted_ids(DBAlert.related_social_post_id, [p.id for p in posts])
        alerts = []
        for post in posts:
            if post.id in alerted:
                continue
            author = f" from {post.author_name}" if post.author_name else ""
            alerts.append(DBAlert(
                client_id=self.client_id,
                alert_type=AlertType.SOCIAL_NEGATIVE,
                severity=AlertSeverity.MEDIUM,
                title=f"Negative Social Mention on {post.platform}",
                message=f"A negative {post.platform} post was detected{author}.",
                related_social_post_id=post.id,
                created_at=self.now
            ))
        return alerts

    def negative_top_result_alerts(self) -> List[DBAlert]:
        """Negative news articles ranking in the top 3 of a client keyword"""
        keywords = DBKeyword.query.filter_by(client_id=self.client_id, is_active=True).all()
        alerts = []
        for keyword in keywords:
            latest = db.session.query(db.func.max(DBSERPResult.checked_at)).filter(
                DBSERPResult.keyword_id == keyword.id
            ).scalar()
            if latest is None:
                continue

            top_results = DBSERPResult.query.filter(
                DBSERPResult.keyword_id == keyword.id,
                DBSERPResult.checked_at == latest,
                DBSERPResult.position.isnot(None),
                DBSERPResult.position <= TOP_POSITIONS
            ).all()
            if not top_results:
                continue

            negative_by_url = {
                mention.url: mention
                for mention in DBNewsMention.query.filter(
                    DBNewsMention.client_id == self.client_id,
                    DBNewsMention.sentiment == Sentiment.NEGATIVE,
                    DBNewsMention.url.in_([r.url for r in top_results])
                ).all()
            }
            if not negative_by_url:
                continue

            alerted = self._alerted_ids(
                DBAlert.related_serp_result_id,
                [r.id for r in top_results],
                alert_type=AlertType.CRITICAL
            )
            for result in top_results:
                mention = negative_by_url.get(result.url)
                if not mention or result.id in alerted:
                    continue
                alerts.append(DBAlert(
                    client_id=self.client_id,
                    alert_type=AlertType.CRITICAL,
                    severity=AlertSeverity.CRITICAL,
                    title=f'Critical: Negative Content in Top {result.position} for "{keyword.keyword}"',
                    message=f"Negative content detected at position {result.position} in SERP results. URL: {result.url}",
                    related_serp_result_id=result.id,
                    related_mention_id=mention.id,
                    created_at=self.now
                ))
        return alerts

    def _alerted_ids(self, column, ids: List[str], alert_type: Optional[str] = None) -> set:
        if not ids:
            return set()
        query = db.session.query(column).filter(column.in_(ids))
        if alert_type:
            query = query.filter(DBAlert.alert_type == alert_type)
        return {row[0] for row in query.all()}


def generate_alerts_for_client(client_id: str, score_comparison: Optional[Dict[str, float]] = None,
                               now: Optional[datetime] = None) -> List[DBAlert]:
    """
    Run every alert check for a client and save the new alerts.

    Args:
        client_id: Client to check
        score_comparison: {'current': float, 'previous': float} from the reputation job
        now: Reference time for the 24h windows

    Returns:
        The saved alerts
    """
    generator = AlertGenerator(client_id, now=now)

    alerts = []
    alerts.extend(generator.score_drop_alerts(score_comparison))
    alerts.extend(generator.negative_news_alerts())
    alerts.extend(generator.negative_social_alerts())

    alerts.extend(generator.negative_top_result_alerts())

    if alerts:
        db.session.add_all(alerts)
        db.session.commit()
        logger.info(f"Generated {len(alerts)} new alerts for client {client_id}")

    return alerts


# ==========================================
# Status transitions
# ==========================================

STATUS_ACTIONS = {
    'acknowledge': AlertStatus.ACKNOWLEDGED,
    'resolve': AlertStatus.RESOLVED,
    'dismiss': AlertStatus.DISMISSED,
    'reopen': AlertStatus.ACTIVE,
}


def update_alert_status(alert: DBAlert, status: str, user_id: Optional[str] = None) -> DBAlert:
    """Move an alert to a new status; accepts a status name or an action verb"""
    status = STATUS_ACTIONS.get(status, status)
    if status not in AlertStatus.ALL:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(AlertStatus.ALL)}")

    alert.status = status
    if status == AlertStatus.RESOLVED:
        alert.resolved_at = utcnow()
        alert.resolved_by = user_id
    elif status == AlertStatus.ACTIVE:
        alert.resolved_at = None
        alert.resolved_by = None

    db.session.commit()
    logger.info(f"Alert {alert.id} -> {status} by {user_id}")
    return alert


def get_alert_or_404(alert_id: str) -> DBAlert:
    alert = db.session.get(DBAlert, alert_id)
    if not alert:
        raise NotFoundError('Alert', alert_id)
    return alert


def get_alert_recipients(client_id: str) -> List[str]:
    """Emails of the client's admins and editors"""
    rows = db.session.query(DBUser.email).join(
        DBClientUser, DBClientUser.user_id == DBUser.id
    ).filter(
        DBClientUser.client_id == client_id,
        DBClientUser.role.in_([ClientRole.ADMIN, ClientRole.EDITOR]),
        DBUser.is_active.is_(True)
    ).all()
    return [row[0] for row in rows]


def get_dashboard_url(app_url: str, client: DBClient) -> str:
    return f"{app_url.rstrip('/')}/clients/{client.id}"


def notifiable_client_ids():
    """Subquery of client ids with at least one active admin or editor"""
    return db.select(DBClientUser.client_id).join(
        DBUser, DBUser.id == DBClientUser.user_id
    ).where(
        DBClientUser.role.in_([ClientRole.ADMIN, ClientRole.EDITOR]),
        DBUser.is_active.is_(True)
    ).distinct()
