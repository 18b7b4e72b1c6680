"""
nORM - WordPress Publishing Service
Pushes generated counter-content to client WordPress sites as drafts
"""
import time
import base64
import logging
from typing import Any, Dict, Optional

import requests

from norm.database import db
from norm.errors import ExternalAPIError
from norm.models.db_models import DBGeneratedContent, DBWordPressSite, ContentStatus
from norm.services.crypto_service import decrypt_string
from norm.utils import utcnow

logger = logging.getLogger(__name__)


def retry_request(func, max_retries=3, delay=1):
    """Retry a request with exponential backoff"""
    last_error = None
    for attempt in range(max_retries):
        try:
            return func()
        except requests.exceptions.RequestException as e:
            last_error = e
            if attempt < max_retries - 1:
                wait_time = delay * (2 ** attempt)
                logger.warning(f"Request failed, retrying in {wait_time}s... ({e})")
                time.sleep(wait_time)
    raise last_error


class WordPressService:
    """REST API client for one WordPress site"""

    def __init__(self, site_url: str, username: str, app_password: str):
        """
        Args:
            site_url: WordPress site URL (e.g., https://example.com)
            username: WordPress username
            app_password: Application password (not the login password)
                          Generate at: WordPress Admin > Users > Profile > Application Passwords
        """
        self.site_url = site_url.rstrip('/')
        self.api_url = f"{self.site_url}/wp-json/wp/v2"
        self.username = username.strip()
        # Application passwords contain spaces; only trim the ends
        self.app_password = app_password.strip() if app_password else ''

        credentials = f"{self.username}:{self.app_password}"
        token = base64.b64encode(credentials.encode('utf-8')).decode('ascii')
        self.headers = {
            'Authorization': f'Basic {token}',
            'Content-Type': 'application/json',
            'User-Agent': 'nORM/1.0',
            'Accept': 'application/json'
        }

    @classmethod
    def for_site(cls, site: DBWordPressSite) -> 'WordPressService':
        return cls(site.site_url, site.username, decrypt_string(site.app_password_encrypted))

    def test_connection(self) -> Dict[str, Any]:
        """Check the credentials against /users/me"""
        try:
            response = retry_request(lambda: requests.get(
                f"{self.api_url}/users/me",
                headers=self.headers,
                timeout=15
            ))
        except requests.exceptions.Timeout:
            return {
                'success': False,
                'error': 'Connection timeout',
                'message': 'The WordPress site took too long to respond. Check the URL and try again.'
            }
        except requests.exceptions.RequestException:
            return {
                'success': False,
                'error': 'Connection failed',
                'message': f'Could not connect to {self.site_url}. Check the URL is correct and the site is accessible.'
            }

        if response.status_code == 200:
            try:
                user_data = response.json()
            except ValueError:
                user_data = {}
            user_name = user_data.get('name', self.username)
            return {
                'success': True,
                'connected_as': user_name,
                'site': self.site_url,
                'message': f"Connected as {user_name}"
            }

        if response.status_code == 401:
            return {
                'success': False,
                'error': 'Authentication failed',
                'message': 'Authentication failed. Check username and application password.'
            }

        if response.status_code == 404:
            return {
                'success': False,
                'error': 'REST API not found',
                'message': 'WordPress REST API not found. Ensure REST API is enabled.'
            }

        return {
            'success': False,
            'error': f'Unexpected response: {response.status_code}',
            'message': response.text[:300]
        }

    def _resolve_category(self, name: str) -> Optional[int]:
        """ID of the category called name, creating it when missing"""
        response = retry_request(lambda: requests.get(
            f"{self.api_url}/categories",
            headers=self.headers,
            params={'search': name},
            timeout=10
        ))
        if response.status_code == 200:
            results = response.json()
            if results:
                return results[0]['id']

        create_response = retry_request(lambda: requests.post(
            f"{self.api_url}/categories",
            headers=self.headers,
            json={'name': name},
            timeout=10
        ))
        if create_response.status_code in (200, 201):
            return create_response.json()['id']

        logger.warning(f"Could not resolve WordPress category '{name}': {create_response.status_code}")
        return None

    def create_draft_post(self, title: str, content: str, excerpt: str = '',
                          category: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a draft post.

        Returns:
            {'post_id': int, 'post_url': str, 'edit_url': str}

        Raises:
            ExternalAPIError when WordPress rejects the post or is unreachable
        """
        post_data = {
            'title': title,
            'content': content,
            'excerpt': excerpt or '',
            'status': 'draft'
        }

        try:
            if category:
                category_id = self._resolve_category(category)
                if category_id:
                    post_data['categories'] = [category_id]

            response = retry_request(lambda: requests.post(
                f"{self.api_url}/posts",
                headers=self.headers,
                json=post_data,
                timeout=30
            ))
        except requests.exceptions.RequestException as e:
            logger.error(f"WordPress publish error: {e}")
            raise ExternalAPIError('WordPress', str(e))

        if response.status_code not in (200, 201):
            raise ExternalAPIError('WordPress', f"Failed to create post: {response.text[:300]}",
                                   upstream_status=response.status_code)

        post = response.json()
        post_id = post.get('id')
        logger.info(f"WordPress draft {post_id} created on {self.site_url}: {title[:60]}")
        return {
            'post_id': post_id,
            'post_url': post.get('link'),
            'edit_url': f"{self.site_url}/wp-admin/post.php?post={post_id}&action=edit"
        }


def publish_content(content: DBGeneratedContent, site: DBWordPressSite) -> Dict[str, Any]:
    """Send content to site as a draft and record the WordPress post on the content row"""
    service = WordPressService.for_site(site)
    result = service.create_draft_post(
        title=content.title,
        content=content.body,
        excerpt=content.meta_description,
        category=site.default_category
    )

    content.wordpress_post_id = result['post_id']
    content.wordpress_site_id = site.id
    content.status = ContentStatus.PUBLISHED
    content.published_at = utcnow()
    db.session.commit()

    return result
