"""
nORM - SQLAlchemy Database Models
PostgreSQL-backed models for production deployment
"""
from datetime import datetime
from typing import Optional, List
import uuid
import json

from sqlalchemy import String, Text, Integer, Float, Boolean, DateTime, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column
from werkzeug.security import generate_password_hash, check_password_hash

from norm.database import db
from norm.utils import safe_json_loads, utcnow, extract_domain


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================
# Enumerations
# ============================================

class ClientRole:
    ADMIN = 'admin'
    EDITOR = 'editor'
    VIEWER = 'viewer'

    HIERARCHY = {ADMIN: 3, EDITOR: 2, VIEWER: 1}
    ALL = [ADMIN, EDITOR, VIEWER]


class Sentiment:
    POSITIVE = 'positive'
    NEUTRAL = 'neutral'
    NEGATIVE = 'negative'

    ALL = [POSITIVE, NEUTRAL, NEGATIVE]


class AlertType:
    NEGATIVE_MENTION = 'negative_mention'
    SCORE_DROP = 'score_drop'
    SERP_CHANGE = 'serp_change'
    SOCIAL_NEGATIVE = 'social_negative'
    CRITICAL = 'critical'

    ALL = [NEGATIVE_MENTION, SCORE_DROP, SERP_CHANGE, SOCIAL_NEGATIVE, CRITICAL]


class AlertSeverity:
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    ALL = [LOW, MEDIUM, HIGH, CRITICAL]


class AlertStatus:
    ACTIVE = 'active'
    ACKNOWLEDGED = 'acknowledged'
    RESOLVED = 'resolved'
    DISMISSED = 'dismissed'

    ALL = [ACTIVE, ACKNOWLEDGED, RESOLVED, DISMISSED]


class ContentStatus:
    DRAFT = 'draft'
    PUBLISHED = 'published'
    ARCHIVED = 'archived'

    ALL = [DRAFT, PUBLISHED, ARCHIVED]


class SocialPlatform:
    FACEBOOK = 'facebook'
    INSTAGRAM = 'instagram'
    LINKEDIN = 'linkedin'

    ALL = [FACEBOOK, INSTAGRAM, LINKEDIN]


# ============================================
# Users & access
# ============================================

class DBUser(db.Model):
    """User account for authentication"""
    __tablename__ = 'users'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __init__(self, email: str, name: str, password: str):
        self.id = _new_id('user')
        self.email = email.strip().lower()
        self.name = name
        self.password_hash = generate_password_hash(password)
        self.is_active = True
        self.created_at = utcnow()

    def verify_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'last_login': _iso(self.last_login)
        }


class DBClientUser(db.Model):
    """Per-client role of a user"""
    __tablename__ = 'client_users'
    __table_args__ = (UniqueConstraint('client_id', 'user_id', name='uq_client_user'),)

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), default=ClientRole.VIEWER)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __init__(self, client_id: str, user_id: str, role: str = ClientRole.VIEWER):
        self.id = _new_id('cu')
        self.client_id = client_id
        self.user_id = user_id
        self.role = role
        self.created_at = utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'user_id': self.user_id,
            'role': self.role,
            'created_at': _iso(self.created_at)
        }


# ============================================
# Client & keywords
# ============================================

class DBClient(db.Model):
    """Monitored brand or person"""
    __tablename__ = 'clients'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    industry: Mapped[str] = mapped_column(String(100), default='')
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Search terms for news monitoring (JSON array)
    monitoring_keywords: Mapped[str] = mapped_column(Text, default='[]')

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_news_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __init__(self, name: str, **kwargs):
        self.id = _new_id('client')
        self.name = name
        self.industry = kwargs.get('industry', '') or ''
        self.website = kwargs.get('website')
        self.set_monitoring_keywords(kwargs.get('monitoring_keywords', []))
        self.is_active = kwargs.get('is_active', True)
        self.created_by = kwargs.get('created_by')
        self.created_at = utcnow()
        self.updated_at = self.created_at

    def get_monitoring_keywords(self) -> List[str]:
        """Monitoring terms, accepting either a JSON array or a comma-separated string"""
        raw = self.monitoring_keywords or ''
        try:
            parsed = json.loads(raw) if raw else []
        except ValueError:
            parsed = None

        if isinstance(parsed, list):
            terms = [str(t) for t in parsed]
        elif not raw.lstrip().startswith('['):
            terms = raw.split(',')
        else:
            terms = []
        return [t.strip() for t in terms if t and t.strip()]

    def set_monitoring_keywords(self, terms):
        if isinstance(terms, str):
            terms = terms.split(',')
        self.monitoring_keywords = json.dumps([t.strip() for t in (terms or []) if t and t.strip()])

    @property
    def domain(self) -> Optional[str]:
        return extract_domain(self.website)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'industry': self.industry,
            'website': self.website,
            'monitoring_keywords': self.get_monitoring_keywords(),
            'is_active': self.is_active,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'last_news_scraped_at': _iso(self.last_news_scraped_at)
        }


class DBKeyword(db.Model):
    """Search term whose SERP is tracked for a client"""
    __tablename__ = 'keywords'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    keyword: Mapped[str] = mapped_column(String(255), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default='normal')
    # Position change that raises a serp_change alert
    alert_threshold: Mapped[int] = mapped_column(Integer, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __init__(self, client_id: str, keyword: str, **kwargs):
        self.id = _new_id('kw')
        self.client_id = client_id
        self.keyword = keyword.strip()
        self.priority = kwargs.get('priority', 'normal')
        self.alert_threshold = kwargs.get('alert_threshold') or 5
        self.is_active = kwargs.get('is_active', True)
        self.created_at = utcnow()
        self.updated_at = self.created_at

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'keyword': self.keyword,
            'priority': self.priority,
            'alert_threshold': self.alert_threshold,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class DBSERPResult(db.Model):
    """One organic result of one SERP check"""
    __tablename__ = 'serp_results'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    keyword_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # None when the client does not rank for the keyword
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    url: Mapped[str] = mapped_column(String(1000), default='')
    title: Mapped[str] = mapped_column(String(500), default='')
    snippet: Mapped[str] = mapped_column(Text, default='')
    domain: Mapped[str] = mapped_column(String(255), default='')
    is_client_content: Mapped[bool] = mapped_column(Boolean, default=False)
    checked_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    def __init__(self, keyword_id: str, **kwargs):
        self.id = _new_id('serp')
        self.keyword_id = keyword_id
        self.position = kwargs.get('position')
        self.url = kwargs.get('url', '') or ''
        self.title = kwargs.get('title', '') or ''
        self.snippet = kwargs.get('snippet', '') or ''
        self.domain = kwargs.get('domain', '') or ''
        self.is_client_content = kwargs.get('is_client_content', False)
        self.checked_at = kwargs.get('checked_at') or utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'keyword_id': self.keyword_id,
            'position': self.position,
            'url': self.url,
            'title': self.title,
            'snippet': self.snippet,
            'domain': self.domain,
            'is_client_content': self.is_client_content,
            'checked_at': _iso(self.checked_at)
        }


# ============================================
# Mentions
# ============================================

class DBNewsMention(db.Model):
    """News article mentioning a client"""
    __tablename__ = 'news_mentions'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    excerpt: Mapped[str] = mapped_column(Text, default='')
    source: Mapped[str] = mapped_column(String(255), default='')
    search_term: Mapped[str] = mapped_column(String(255), default='')
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    sentiment: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sentiment_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sentiment_rationale: Mapped[str] = mapped_column(Text, default='')

    def __init__(self, client_id: str, title: str, url: str, **kwargs):
        self.id = _new_id('news')
        self.client_id = client_id
        self.title = title
        self.url = url
        self.excerpt = kwargs.get('excerpt', '') or ''
        self.source = kwargs.get('source', '') or ''
        self.search_term = kwargs.get('search_term', '') or ''
        self.published_at = kwargs.get('published_at')
        self.scraped_at = kwargs.get('scraped_at') or utcnow()
        self.sentiment = kwargs.get('sentiment')
        self.sentiment_score = kwargs.get('sentiment_score')
        self.sentiment_confidence = kwargs.get('sentiment_confidence')
        self.sentiment_rationale = kwargs.get('sentiment_rationale', '') or ''

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'title': self.title,
            'url': self.url,
            'excerpt': self.excerpt,
            'source': self.source,
            'search_term': self.search_term,
            'published_at': _iso(self.published_at),
            'scraped_at': _iso(self.scraped_at),
            'sentiment': self.sentiment,
            'sentiment_score': self.sentiment_score,
            'sentiment_confidence': self.sentiment_confidence,
            'sentiment_rationale': self.sentiment_rationale
        }


class DBSocialAccount(db.Model):
    """Connected social profile of a client"""
    __tablename__ = 'social_accounts'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), default='')
    # Fernet ciphertext
    access_token_encrypted: Mapped[str] = mapped_column(Text, default='')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __init__(self, client_id: str, platform: str, account_id: str, **kwargs):
        self.id = _new_id('social')
        self.client_id = client_id
        self.platform = platform
        self.account_id = account_id
        self.account_name = kwargs.get('account_name', '') or ''
        self.access_token_encrypted = kwargs.get('access_token_encrypted', '') or ''
        self.is_active = kwargs.get('is_active', True)
        self.created_at = utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'platform': self.platform,
            'account_id': self.account_id,
            'account_name': self.account_name,
            'is_active': self.is_active,
            'last_synced_at': _iso(self.last_synced_at),
            'created_at': _iso(self.created_at)
        }


class DBSocialPost(db.Model):
    """Post, comment or mention pulled from a social account"""
    __tablename__ = 'social_posts'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    social_account_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    post_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    post_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    author_name: Mapped[str] = mapped_column(String(255), default='Unknown')
    content: Mapped[str] = mapped_column(Text, default='')
    content_type: Mapped[str] = mapped_column(String(20), default='mention')
    published_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    engagement_likes: Mapped[int] = mapped_column(Integer, default=0)
    engagement_comments: Mapped[int] = mapped_column(Integer, default=0)
    engagement_shares: Mapped[int] = mapped_column(Integer, default=0)

    sentiment: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sentiment_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __init__(self, social_account_id: str, platform: str, post_id: str, **kwargs):
        self.id = _new_id('post')
        self.social_account_id = social_account_id
        self.platform = platform
        self.post_id = post_id
        self.post_url = kwargs.get('post_url')
        self.author_id = kwargs.get('author_id')
        self.author_name = kwargs.get('author_name') or 'Unknown'
        self.content = kwargs.get('content', '') or ''
        self.content_type = kwargs.get('content_type', 'mention')
        self.published_at = kwargs.get('published_at') or utcnow()
        self.scraped_at = utcnow()
        self.engagement_likes = kwargs.get('engagement_likes', 0) or 0
        self.engagement_comments = kwargs.get('engagement_comments', 0) or 0
        self.engagement_shares = kwargs.get('engagement_shares', 0) or 0
        self.sentiment = kwargs.get('sentiment')
        self.sentiment_score = kwargs.get('sentiment_score')
        self.sentiment_confidence = kwargs.get('sentiment_confidence')

    @property
    def engagement_total(self) -> int:
        return (self.engagement_likes or 0) + (self.engagement_comments or 0) + (self.engagement_shares or 0)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'social_account_id': self.social_account_id,
            'platform': self.platform,
            'post_id': self.post_id,
            'post_url': self.post_url,
            'author_id': self.author_id,
            'author_name': self.author_name,
            'content': self.content,
            'content_type': self.content_type,
            'published_at': _iso(self.published_at),
            'scraped_at': _iso(self.scraped_at),
            'engagement': {
                'likes': self.engagement_likes,
                'comments': self.engagement_comments,
                'shares': self.engagement_shares,
                'total': self.engagement_total
            },
            'sentiment': self.sentiment,
            'sentiment_score': self.sentiment_score,
            'sentiment_confidence': self.sentiment_confidence
        }


# ============================================
# Alerts & scores
# ============================================

class DBAlert(db.Model):
    """Negative signal raised for a client"""
    __tablename__ = 'alerts'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), default=AlertSeverity.LOW, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, default='')

    related_mention_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    related_social_post_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    related_serp_result_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(20), default=AlertStatus.ACTIVE, index=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __init__(self, client_id: str, alert_type: str, severity: str, title: str, **kwargs):
        self.id = _new_id('alert')
        self.client_id = client_id
        self.alert_type = alert_type
        self.severity = severity
        self.title = title
        self.message = kwargs.get('message', '') or ''
        self.related_mention_id = kwargs.get('related_mention_id')
        self.related_social_post_id = kwargs.get('related_social_post_id')
        self.related_serp_result_id = kwargs.get('related_serp_result_id')
        self.status = kwargs.get('status', AlertStatus.ACTIVE)
        self.email_sent = False
        self.created_at = kwargs.get('created_at') or utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'alert_type': self.alert_type,
            'severity': self.severity,
            'title': self.title,
            'message': self.message,
            'related_mention_id': self.related_mention_id,
            'related_social_post_id': self.related_social_post_id,
            'related_serp_result_id': self.related_serp_result_id,
            'status': self.status,
            'email_sent': self.email_sent,
            'email_sent_at': _iso(self.email_sent_at),
            'created_at': _iso(self.created_at),
            'resolved_at': _iso(self.resolved_at),
            'resolved_by': self.resolved_by
        }


class DBReputationScore(db.Model):
    """Immutable reputation snapshot for one period"""
    __tablename__ = 'reputation_scores'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    score_breakdown: Mapped[str] = mapped_column(Text, default='{}')  # JSON object
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    def __init__(self, client_id: str, score: float, breakdown: dict,
                 period_start: datetime, period_end: datetime, calculated_at: datetime = None):
        self.id = _new_id('score')
        self.client_id = client_id
        self.score = score
        self.score_breakdown = json.dumps(breakdown)
        self.period_start = period_start
        self.period_end = period_end
        self.calculated_at = calculated_at or utcnow()

    @property
    def breakdown(self) -> dict:
        return safe_json_loads(self.score_breakdown, default={})

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'score': self.score,
            'score_breakdown': self.breakdown,
            'period_start': _iso(self.period_start),
            'period_end': _iso(self.period_end),
            'calculated_at': _iso(self.calculated_at)
        }


@event.listens_for(DBReputationScore, 'before_update')
def _reject_score_update(mapper, connection, target):
    raise ValueError("Reputation score snapshots are append-only")


# ============================================
# Content & publishing
# ============================================

class DBGeneratedContent(db.Model):
    """AI-generated article, optionally pushed to WordPress"""
    __tablename__ = 'generated_content'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    trigger_alert_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    trigger_mention_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, default='')
    meta_description: Mapped[str] = mapped_column(String(500), default='')
    target_keywords: Mapped[str] = mapped_column(Text, default='[]')  # JSON array

    seo_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    word_count: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(20), default=ContentStatus.DRAFT)
    wordpress_post_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    wordpress_site_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    generated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __init__(self, client_id: str, title: str, body: str, **kwargs):
        self.id = _new_id('content')
        self.client_id = client_id
        self.title = title
        self.body = body or ''
        self.meta_description = kwargs.get('meta_description', '') or ''
        self.target_keywords = json.dumps(kwargs.get('target_keywords') or [])
        self.trigger_alert_id = kwargs.get('trigger_alert_id')
        self.trigger_mention_id = kwargs.get('trigger_mention_id')
        self.seo_score = kwargs.get('seo_score')
        self.sentiment_score = kwargs.get('sentiment_score')
        self.word_count = kwargs.get('word_count') or len(self.body.split())
        self.status = kwargs.get('status', ContentStatus.DRAFT)
        self.created_by = kwargs.get('created_by')
        self.generated_at = utcnow()

    def get_target_keywords(self) -> List[str]:
        return safe_json_loads(self.target_keywords)

    def to_dict(self, include_body: bool = True) -> dict:
        data = {
            'id': self.id,
            'client_id': self.client_id,
            'trigger_alert_id': self.trigger_alert_id,
            'trigger_mention_id': self.trigger_mention_id,
            'title': self.title,
            'meta_description': self.meta_description,
            'target_keywords': self.get_target_keywords(),
            'seo_score': self.seo_score,
            'sentiment_score': self.sentiment_score,
            'word_count': self.word_count,
            'status': self.status,
            'wordpress_post_id': self.wordpress_post_id,
            'wordpress_site_id': self.wordpress_site_id,
            'generated_at': _iso(self.generated_at),
            'published_at': _iso(self.published_at),
            'created_by': self.created_by
        }
        if include_body:
            data['body'] = self.body
        return data


class DBWordPressSite(db.Model):
    """WordPress site a client publishes counter-content to"""
    __tablename__ = 'wordpress_sites'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    site_url: Mapped[str] = mapped_column(String(500), nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    # Fernet ciphertext of the WordPress application password
    app_password_encrypted: Mapped[str] = mapped_column(Text, default='')
    default_category: Mapped[str] = mapped_column(String(255), default='Blog')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_tested_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __init__(self, client_id: str, site_url: str, username: str, **kwargs):
        self.id = _new_id('wp')
        self.client_id = client_id
        self.site_url = site_url.rstrip('/')
        self.username = username
        self.app_password_encrypted = kwargs.get('app_password_encrypted', '') or ''
        self.default_category = kwargs.get('default_category') or 'Blog'
        self.is_active = kwargs.get('is_active', True)
        self.created_at = utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'client_id': self.client_id,
            'site_url': self.site_url,
            'username': self.username,
            'default_category': self.default_category,
            'is_active': self.is_active,
            'last_tested_at': _iso(self.last_tested_at),
            'created_at': _iso(self.created_at)
        }
