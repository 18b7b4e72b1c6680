"""
nORM - Social Service
Facebook, Instagram and LinkedIn mention monitoring
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from flask import current_app

from norm.database import db
from norm.errors import ExternalAPIError, ValidationError
from norm.models.db_models import DBSocialAccount, DBSocialPost, SocialPlatform
from norm.services.ai_service import get_ai_service
from norm.services.crypto_service import decrypt_string
from norm.utils import utcnow

logger = logging.getLogger(__name__)

LINKEDIN_API_BASE = 'https://api.linkedin.com/v2'


def _parse_meta_time(value: Optional[str]) -> datetime:
    """Meta timestamps look like 2024-05-01T12:30:00+0000"""
    if not value:
        return utcnow()
    try:
        parsed = datetime.strptime(value, '%Y-%m-%dT%H:%M:%S%z')
    except ValueError:
        return utcnow()
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_epoch_ms(value) -> datetime:
    if not value:
        return utcnow()
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).replace(tzinfo=None)


def _summary_count(node: Optional[Dict]) -> int:
    if not node:
        return 0
    return (node.get('summary') or {}).get('total_count', 0) or 0


class SocialService:
    """Pulls mentions from the social APIs and stores them with sentiment"""

    @property
    def graph_base(self):
        return f"https://graph.facebook.com/{current_app.config.get('META_GRAPH_VERSION', 'v19.0')}"

    def _get(self, service: str, url: str, params: Dict = None, headers: Dict = None) -> Dict[str, Any]:
        try:
            response = requests.get(url, params=params, headers=headers, timeout=30)
        except requests.RequestException as e:
            raise ExternalAPIError(service, str(e))

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            error = data.get('error')
            message = error.get('message') if isinstance(error, dict) else data.get('message')
            raise ExternalAPIError(service, message or f'HTTP {response.status_code}',
                                   upstream_status=response.status_code)
        return data

    # ==========================================
    # Platform fetchers
    # ==========================================

    def get_facebook_mentions(self, access_token: str, page_id: str, limit: int = 25) -> List[Dict[str, Any]]:
        """Posts tagging the page plus visitor comments on the page's own posts"""
        mentions = []

        tagged = self._get('Facebook', f"{self.graph_base}/{page_id}/tagged", params={
            'access_token': access_token,
            'fields': 'id,message,from,created_time,permalink_url,reactions.summary(true),comments.summary(true),shares',
            'limit': limit
        })
        for post in tagged.get('data', []):
            author = post.get('from') or {}
            mentions.append({
                'id': post['id'],
                'text': post.get('message', ''),
                'author_id': author.get('id'),
                'author_name': author.get('name'),
                'timestamp': _parse_meta_time(post.get('created_time')),
                'content_type': 'mention',
                'url': post.get('permalink_url'),
                'engagement': {
                    'likes': _summary_count(post.get('reactions')),
                    'comments': _summary_count(post.get('comments')),
                    'shares': (post.get('shares') or {}).get('count', 0)
                }
            })

        feed = self._get('Facebook', f"{self.graph_base}/{page_id}/feed", params={
            'access_token': access_token,
            'fields': 'id,permalink_url,comments.limit(50){id,message,from,created_time,like_count}',
            'limit': limit
        })
        for post in feed.get('data', []):
            for comment in (post.get('comments') or {}).get('data', []):
                author = comment.get('from') or {}
                # Skip the page replying to itself
                if author.get('id') == page_id:
                    continue
                mentions.append({
                    'id': comment['id'],
                    'text': comment.get('message', ''),
                    'author_id': author.get('id'),
                    'author_name': author.get('name'),
                    'timestamp': _parse_meta_time(comment.get('created_time')),
                    'content_type': 'comment',
                    'url': post.get('permalink_url'),
                    'engagement': {'likes': comment.get('like_count', 0), 'comments': 0, 'shares': 0}
                })

        return mentions

    def get_instagram_mentions(self, access_token: str, ig_user_id: str, limit: int = 25) -> List[Dict[str, Any]]:
        """Media the business account was tagged in"""
        data = self._get('Instagram', f"{self.graph_base}/{ig_user_id}/tags", params={
            'access_token': access_token,
            'fields': 'id,caption,username,timestamp,permalink,like_count,comments_count',
            'limit': limit
        })
        return [
            {
                'id': media['id'],
                'text': media.get('caption', ''),
                'author_id': media.get('username'),
                'author_name': media.get('username'),
                'timestamp': _parse_meta_time(media.get('timestamp')),
                'content_type': 'mention',
                'url': media.get('permalink'),
                'engagement': {
                    'likes': media.get('like_count', 0),
                    'comments': media.get('comments_count', 0),
                    'shares': 0
                }
            }
            for media in data.get('data', [])
        ]

    def get_linkedin_mentions(self, access_token: str, organization_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Comments left on the organization's recent shares"""
        headers = {
            'Authorization': f'Bearer {access_token}',
            'X-Restli-Protocol-Version': '2.0.0'
        }
        owner = f"urn:li:organization:{organization_id}"
        shares = self._get('LinkedIn', f"{LINKEDIN_API_BASE}/shares", headers=headers, params={
            'q': 'owners',
            'owners': owner,
            'count': limit
        })

        mentions = []
        for share in shares.get('elements', []):
            share_urn = share.get('activity') or f"urn:li:share:{share.get('id')}"
            comments = self._get('LinkedIn', f"{LINKEDIN_API_BASE}/socialActions/{share_urn}/comments",
                                 headers=headers)
            for comment in comments.get('elements', []):
                actor = comment.get('actor', '')
                if actor == owner:
                    continue
                mentions.append({
                    'id': comment.get('id') or comment.get('$URN'),
                    'text': (comment.get('message') or {}).get('text', ''),
                    'author_id': actor,
                    'author_name': None,
                    'timestamp': _parse_epoch_ms((comment.get('created') or {}).get('time')),
                    'content_type': 'comment',
                    'url': f"https://www.linkedin.com/feed/update/{share_urn}",
                    'engagement': {
                        'likes': (comment.get('likesSummary') or {}).get('totalLikes', 0),
                        'comments': 0,
                        'shares': 0
                    }
                })
        return mentions

    def fetch_mentions(self, account: DBSocialAccount, access_token: str) -> List[Dict[str, Any]]:
        if account.platform == SocialPlatform.FACEBOOK:
            return self.get_facebook_mentions(access_token, account.account_id)
        if account.platform == SocialPlatform.INSTAGRAM:
            return self.get_instagram_mentions(access_token, account.account_id)
        if account.platform == SocialPlatform.LINKEDIN:
            return self.get_linkedin_mentions(access_token, account.account_id)
        raise ValidationError(f"Unsupported platform: {account.platform}")

    # ==========================================
    # Sync
    # ==========================================

    def sync_account(self, account: DBSocialAccount) -> Dict[str, int]:
        """
        Fetch new mentions for one account, classify and store them.

        Mentions already stored for the account are skipped.

        Returns:
            {'found': int, 'inserted': int}
        """
        access_token = decrypt_string(account.access_token_encrypted)
        mentions = [m for m in self.fetch_mentions(account, access_token) if m.get('id')]

        existing = set()
        if mentions:
            rows = db.session.query(DBSocialPost.post_id).filter(
                DBSocialPost.social_account_id == account.id,
                DBSocialPost.post_id.in_([m['id'] for m in mentions])
            ).all()
            existing = {row[0] for row in rows}

        ai = get_ai_service()
        inserted = 0
        for mention in mentions:
            if mention['id'] in existing:
                continue
            existing.add(mention['id'])

            sentiment = ai.analyze_sentiment(mention.get('text') or '')
            engagement = mention.get('engagement') or {}
            db.session.add(DBSocialPost(
                social_account_id=account.id,
                platform=account.platform,
                post_id=mention['id'],
                post_url=mention.get('url'),
                author_id=mention.get('author_id'),
                author_name=mention.get('author_name'),
                content=mention.get('text') or '',
                content_type=mention.get('content_type', 'mention'),
                published_at=mention.get('timestamp'),
                engagement_likes=engagement.get('likes', 0),
                engagement_comments=engagement.get('comments', 0),
                engagement_shares=engagement.get('shares', 0),
                sentiment=sentiment['sentiment'],
                sentiment_score=sentiment['score'],
                sentiment_confidence=sentiment['confidence']
            ))
            inserted += 1

        account.last_synced_at = utcnow()
        db.session.commit()
        logger.info(f"Synced {account.platform} account {account.account_name or account.account_id}: "
                    f"{len(mentions)} found, {inserted} new")
        return {'found': len(mentions), 'inserted': inserted}


def get_unified_feed(client_ids: List[str], platform: str = None, sentiment: str = None,
                     limit: int = 50, offset: int = 0) -> Dict[str, Any]:
    """Social posts of the given clients, newest first"""
    query = DBSocialPost.query.join(
        DBSocialAccount, DBSocialAccount.id == DBSocialPost.social_account_id
    ).filter(DBSocialAccount.client_id.in_(client_ids))

    if platform:
        query = query.filter(DBSocialPost.platform == platform)
    if sentiment:
        query = query.filter(DBSocialPost.sentiment == sentiment)

    total = query.count()
    posts = query.order_by(DBSocialPost.published_at.desc()).offset(offset).limit(limit).all()

    return {
        'mentions': [p.to_dict() for p in posts],
        'total': total,
        'limit': limit,
        'offset': offset
    }


# Singleton instance
_social_service = None


def get_social_service() -> SocialService:
    """Get or create social service instance"""
    global _social_service
    if _social_service is None:
        _social_service = SocialService()
    return _social_service
