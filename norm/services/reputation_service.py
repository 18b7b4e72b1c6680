"""
nORM - Reputation Score Service
Composite 0-100 reputation score from SERP positions, news and social sentiment

score = (serp * 0.35 + news * 0.25 + social * 0.20 + trend * 0.15 + volume * 0.05) * 10

Each sub-score lives on a 0-10 scale; a sub-score with no data is neutral (5.0).
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func

from norm.database import db
from norm.models.db_models import (
    DBKeyword, DBSERPResult, DBNewsMention, DBSocialAccount, DBSocialPost,
    DBReputationScore, Sentiment
)
from norm.services.serp_service import get_serp_service
from norm.utils import utcnow

logger = logging.getLogger(__name__)

WEIGHTS = {
    'serp': 0.35,
    'news': 0.25,
    'social': 0.20,
    'trend': 0.15,
    'volume': 0.05,
}

NEUTRAL_SUBSCORE = 5.0
TREND_THRESHOLD = 2
SHORT_TERM_DAYS = 7
DEFAULT_PERIOD_DAYS = 30
ANALYSIS_MENTION_LIMIT = 100


def _clamp_subscore(value: float) -> float:
    return round(max(0.0, min(10.0, value)), 2)


def _sentiment_to_subscore(avg: Optional[float]) -> float:
    """Map an average sentiment in [-1, 1] onto [0, 10]"""
    if avg is None:
        return NEUTRAL_SUBSCORE
    return _clamp_subscore((avg + 1) * 5)


def _average(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def serp_subscore(client_id: str, period_start: datetime, period_end: datetime) -> float:
    """Average position of client-owned results: position 1 -> 10, position 11 or worse -> 0"""
    avg_position = db.session.query(func.avg(DBSERPResult.position)).join(
        DBKeyword, DBKeyword.id == DBSERPResult.keyword_id
    ).filter(
        DBKeyword.client_id == client_id,
        DBSERPResult.is_client_content.is_(True),
        DBSERPResult.position.isnot(None),
        DBSERPResult.checked_at >= period_start,
        DBSERPResult.checked_at <= period_end
    ).scalar()

    if avg_position is None:
        return NEUTRAL_SUBSCORE
    return _clamp_subscore(11 - float(avg_position))


def _news_signals(client_id: str, period_start: datetime, period_end: datetime) -> List[Tuple[datetime, Optional[float], Optional[str]]]:
    rows = db.session.query(
        DBNewsMention.scraped_at, DBNewsMention.sentiment_score, DBNewsMention.sentiment
    ).filter(
        DBNewsMention.client_id == client_id,
        DBNewsMention.scraped_at >= period_start,
        DBNewsMention.scraped_at <= period_end
    ).all()
    return [tuple(row) for row in rows]


def _social_signals(client_id: str, period_start: datetime, period_end: datetime) -> List[Tuple[datetime, Optional[float], Optional[str]]]:
    rows = db.session.query(
        DBSocialPost.published_at, DBSocialPost.sentiment_score, DBSocialPost.sentiment
    ).join(
        DBSocialAccount, DBSocialAccount.id == DBSocialPost.social_account_id
    ).filter(
        DBSocialAccount.client_id == client_id,
        DBSocialPost.published_at >= period_start,
        DBSocialPost.published_at <= period_end
    ).all()
    return [tuple(row) for row in rows]


def trend_subscore(signals: Iterable[Tuple[datetime, Optional[float], Optional[str]]],
                   period_start: datetime, period_end: datetime) -> float:
    """
    Short-term momentum: average sentiment of the last 7 days minus the
    average of the rest of the period, mapped 5 + delta * 5.
    """
    split = max(period_start, period_end - timedelta(days=SHORT_TERM_DAYS))
    recent = [score for ts, score, _ in signals if score is not None and ts >= split]
    earlier = [score for ts, score, _ in signals if score is not None and ts < split]

    if not recent or not earlier:
        return NEUTRAL_SUBSCORE

    delta = _average(recent) - _average(earlier)
    return _clamp_subscore(5 + delta * 5)


def volume_subscore(signals: Iterable[Tuple[datetime, Optional[float], Optional[str]]]) -> float:
    """Share of positive among positive+negative mentions, on a 0-10 scale"""
    sentiments = [sentiment for _, _, sentiment in signals]
    positive = sentiments.count(Sentiment.POSITIVE)
    negative = sentiments.count(Sentiment.NEGATIVE)

    if positive + negative == 0:
        return NEUTRAL_SUBSCORE
    return _clamp_subscore(10 * positive / (positive + negative))


def combine_subscores(breakdown: Dict[str, float]) -> float:
    """Weighted sum of the 0-10 sub-scores, scaled to 0-100"""
    total = sum(breakdown[name] * weight for name, weight in WEIGHTS.items())
    return round(total * 10, 2)


def calculate_reputation_score(client_id: str, period_start: datetime, period_end: datetime) -> Dict[str, Any]:
    """
    Calculate the reputation score of a client for [period_start, period_end].

    Returns:
        {'score': float 0-100, 'breakdown': {serp, news, social, trend, volume}}
    """
    news = _news_signals(client_id, period_start, period_end)
    social = _social_signals(client_id, period_start, period_end)
    combined = news + social

    breakdown = {
        'serp': serp_subscore(client_id, period_start, period_end),
        'news': _sentiment_to_subscore(_average([s for _, s, _ in news if s is not None])),
        'social': _sentiment_to_subscore(_average([s for _, s, _ in social if s is not None])),
        'trend': trend_subscore(combined, period_start, period_end),
        'volume': volume_subscore(combined),
    }

    score = combine_subscores(breakdown)
    logger.debug(f"Reputation score for {client_id}: {score} {breakdown}")
    return {'score': score, 'breakdown': breakdown}


def calculate_trend(current_score: float, previous_score: float) -> str:
    """'up' when the score rose by more than 2 points, 'down' when it fell by more than 2"""
    difference = current_score - previous_score
    if difference > TREND_THRESHOLD:
        return 'up'
    if difference < -TREND_THRESHOLD:
        return 'down'
    return 'stable'


def analyze_trend(scores: Iterable[DBReputationScore], period_days: int = DEFAULT_PERIOD_DAYS,
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """Direction and size of the change between the oldest and newest snapshot in the window"""
    now = now or utcnow()
    cutoff = now - timedelta(days=period_days)

    recent = sorted(
        (s for s in scores if s.calculated_at >= cutoff),
        key=lambda s: s.calculated_at
    )

    if len(recent) < 2:
        return {
            'direction': 'stable',
            'change': 0,
            'period': period_days,
            'data_points': len(recent)
        }

    change = recent[-1].score - recent[0].score
    return {
        'direction': calculate_trend(recent[-1].score, recent[0].score),
        'change': round(change, 2),
        'period': period_days,
        'data_points': len(recent)
    }


def get_reputation_overview(client_id: str, now: Optional[datetime] = None,
                            period_days: int = DEFAULT_PERIOD_DAYS) -> Dict[str, Any]:
    """Current window score compared with the window just before it"""
    now = now or utcnow()
    period_start = now - timedelta(days=period_days)
    previous_start = period_start - timedelta(days=period_days)

    current = calculate_reputation_score(client_id, period_start, now)
    previous = calculate_reputation_score(client_id, previous_start, period_start)

    return {
        'client_id': client_id,
        'score': current['score'],
        'breakdown': current['breakdown'],
        'previous_score': previous['score'],
        'trend': calculate_trend(current['score'], previous['score']),
        'change': round(current['score'] - previous['score'], 2),
        'period_start': period_start.isoformat(),
        'period_end': now.isoformat(),
        'calculated_at': now.isoformat()
    }


def get_reputation_analysis_input(client_id: str, now: Optional[datetime] = None,
                                  period_days: int = DEFAULT_PERIOD_DAYS) -> Dict[str, Any]:
    """
    Everything the AI assessment needs: both window scores, the current
    position of every active keyword and a sample of recent mentions.

    A keyword's change is previous - current, so a positive value means it climbed.
    """
    now = now or utcnow()
    period_start = now - timedelta(days=period_days)
    previous_start = period_start - timedelta(days=period_days)

    current = calculate_reputation_score(client_id, period_start, now)
    previous = calculate_reputation_score(client_id, previous_start, period_start)

    serp = get_serp_service()
    positions = []
    keywords = DBKeyword.query.filter_by(client_id=client_id, is_active=True).order_by(DBKeyword.keyword).all()
    for kw in keywords:
        detected = serp.detect_serp_changes(kw.id, kw.alert_threshold)
        current_position = detected['current_position']
        previous_position = detected['previous_position']
        change = 0
        if current_position is not None and previous_position is not None:
            change = previous_position - current_position
        positions.append({'keyword': kw.keyword, 'position': current_position, 'change': change})

    news = DBNewsMention.query.filter(
        DBNewsMention.client_id == client_id,
        DBNewsMention.scraped_at >= period_start
    ).order_by(DBNewsMention.scraped_at.desc()).limit(ANALYSIS_MENTION_LIMIT).all()

    social = db.session.query(DBSocialPost).join(
        DBSocialAccount, DBSocialAccount.id == DBSocialPost.social_account_id
    ).filter(
        DBSocialAccount.client_id == client_id,
        DBSocialPost.published_at >= period_start
    ).order_by(DBSocialPost.published_at.desc()).limit(ANALYSIS_MENTION_LIMIT).all()

    mentions = [
        {'type': 'news', 'sentiment': m.sentiment or Sentiment.NEUTRAL, 'title': m.title, 'url': m.url}
        for m in news
    ] + [
        {'type': 'social', 'sentiment': p.sentiment or Sentiment.NEUTRAL, 'title': (p.content or '')[:100],
         'url': p.post_url}
        for p in social
    ]

    return {
        'client_id': client_id,
        'current_score': current['score'],
        'previous_score': previous['score'],
        'breakdown': current['breakdown'],
        'serp_positions': positions,
        'mentions': mentions,
        'period_start': period_start,
        'period_end': now
    }


def get_latest_score(client_id: str, before: Optional[datetime] = None) -> Optional[DBReputationScore]:
    query = DBReputationScore.query.filter_by(client_id=client_id)
    if before is not None:
        query = query.filter(DBReputationScore.calculated_at < before)
    return query.order_by(DBReputationScore.calculated_at.desc()).first()


def record_reputation_score(client_id: str, period_start: datetime, period_end: datetime) -> DBReputationScore:
    """Compute and append a new snapshot. Snapshots are never updated."""
    result = calculate_reputation_score(client_id, period_start, period_end)
    snapshot = DBReputationScore(
        client_id=client_id,
        score=result['score'],
        breakdown=result['breakdown'],
        period_start=period_start,
        period_end=period_end
    )
    db.session.add(snapshot)
    db.session.commit()
    logger.info(f"Recorded reputation score {snapshot.score} for client {client_id}")
    return snapshot
