"""
nORM - Social Routes
Unified feed of social mentions
"""
from flask import Blueprint, request, jsonify

from norm.errors import ValidationError
from norm.models.db_models import Sentiment, SocialPlatform
from norm.routes.auth import token_required
from norm.services.rbac_service import get_user_clients, require_client_access
from norm.services.social_service import get_unified_feed
from norm.utils import get_pagination_params

social_bp = Blueprint('social', __name__)


@social_bp.route('/mentions', methods=['GET'])
@token_required
def list_mentions(current_user):
    """
    GET /api/social/mentions?client_id=&platform=&sentiment=&limit=&offset=
    """
    client_id = request.args.get('client_id')
    if client_id:
        require_client_access(current_user.id, client_id)
        client_ids = [client_id]
    else:
        client_ids = get_user_clients(current_user.id)

    platform = request.args.get('platform')
    if platform and platform not in SocialPlatform.ALL:
        raise ValidationError(f"Invalid platform. Must be one of: {', '.join(SocialPlatform.ALL)}")

    sentiment = request.args.get('sentiment')
    if sentiment and sentiment not in Sentiment.ALL:
        raise ValidationError(f"Invalid sentiment. Must be one of: {', '.join(Sentiment.ALL)}")

    limit, offset = get_pagination_params(request)

    if not client_ids:
        return jsonify({'mentions': [], 'total': 0, 'limit': limit, 'offset': offset})

    return jsonify(get_unified_feed(client_ids, platform=platform, sentiment=sentiment,
                                    limit=limit, offset=offset))
