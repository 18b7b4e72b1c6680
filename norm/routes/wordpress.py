"""
nORM - WordPress Routes
Site connections and draft publishing
"""
import logging

from flask import Blueprint, request, jsonify

from norm.database import db
from norm.errors import NotFoundError, ValidationError
from norm.models.db_models import DBGeneratedContent, DBWordPressSite, ClientRole
from norm.routes.auth import token_required
from norm.routes.clients import get_client_or_404
from norm.services.crypto_service import encrypt_string
from norm.services.rbac_service import get_user_clients, require_client_access
from norm.services.wordpress_service import WordPressService, publish_content
from norm.utils import utcnow

logger = logging.getLogger(__name__)

wordpress_bp = Blueprint('wordpress', __name__)


def _get_site_or_404(site_id: str) -> DBWordPressSite:
    site = db.session.get(DBWordPressSite, site_id)
    if not site or not site.is_active:
        raise NotFoundError('WordPress site', site_id)
    return site


@wordpress_bp.route('/sites', methods=['GET'])
@token_required
def list_sites(current_user):
    """GET /api/wordpress/sites?client_id="""
    client_id = request.args.get('client_id')
    if client_id:
        require_client_access(current_user.id, client_id)
        client_ids = [client_id]
    else:
        client_ids = get_user_clients(current_user.id)

    sites = []
    if client_ids:
        sites = DBWordPressSite.query.filter(
            DBWordPressSite.client_id.in_(client_ids),
            DBWordPressSite.is_active.is_(True)
        ).order_by(DBWordPressSite.created_at).all()

    return jsonify({'sites': [s.to_dict() for s in sites]})


@wordpress_bp.route('/sites', methods=['POST'])
@token_required
def create_site(current_user):
    """
    Connect a WordPress site; the credentials are tested before saving

    POST /api/wordpress/sites
    {
        "client_id": "client_abc",
        "site_url": "https://blog.example.com",
        "username": "editor",
        "app_password": "xxxx xxxx xxxx xxxx",
        "default_category": "Blog"
    }
    """
    data = request.get_json(silent=True) or {}

    client_id = data.get('client_id')
    if not client_id:
        raise ValidationError('client_id is required')
    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    get_client_or_404(client_id)

    site_url = (data.get('site_url') or '').strip()
    username = (data.get('username') or '').strip()
    app_password = data.get('app_password') or data.get('application_password') or ''

    if not site_url.startswith(('http://', 'https://')):
        raise ValidationError('site_url must be an http(s) URL')
    if not username or not app_password:
        raise ValidationError('username and app_password are required')

    test = WordPressService(site_url, username, app_password).test_connection()
    if not test['success']:
        raise ValidationError(f"Failed to connect to WordPress: {test['message']}", code='CONNECTION_FAILED')

    site = DBWordPressSite(
        client_id=client_id,
        site_url=site_url,
        username=username,
        app_password_encrypted=encrypt_string(app_password),
        default_category=data.get('default_category')
    )
    site.last_tested_at = utcnow()
    db.session.add(site)
    db.session.commit()
    logger.info(f"WordPress site {site.id} connected for client {client_id}")

    return jsonify({'site': site.to_dict(), 'connected_as': test.get('connected_as')}), 201


@wordpress_bp.route('/sites/<site_id>', methods=['DELETE'])
@token_required
def delete_site(current_user, site_id):
    site = _get_site_or_404(site_id)
    require_client_access(current_user.id, site.client_id, ClientRole.EDITOR)

    site.is_active = False
    db.session.commit()

    return jsonify({'message': 'WordPress site removed'})


@wordpress_bp.route('/publish', methods=['POST'])
@token_required
def publish(current_user):
    """
    Publish generated content to WordPress as a draft

    POST /api/wordpress/publish
    {"content_id": "content_abc", "wordpress_site_id": "wp_abc"}
    """
    data = request.get_json(silent=True) or {}

    content_id = data.get('content_id')
    site_id = data.get('wordpress_site_id') or data.get('site_id')
    if not content_id or not site_id:
        raise ValidationError('content_id and wordpress_site_id are required')

    content = db.session.get(DBGeneratedContent, content_id)
    if not content:
        raise NotFoundError('Content', content_id)
    require_client_access(current_user.id, content.client_id, ClientRole.EDITOR)

    site = _get_site_or_404(site_id)
    if site.client_id != content.client_id:
        raise ValidationError('WordPress site does not belong to the content client')

    result = publish_content(content, site)

    return jsonify({
        'wordpress_post_id': result['post_id'],
        'wordpress_url': result['post_url'],
        'edit_url': result['edit_url'],
        'content': content.to_dict(include_body=False)
    })
