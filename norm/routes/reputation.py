"""
nORM - Reputation Routes
Stored score history and trend analysis
"""
from datetime import timedelta

from flask import Blueprint, request, jsonify

from norm.errors import ValidationError
from norm.models.db_models import DBReputationScore
from norm.routes.auth import token_required
from norm.routes.clients import get_client_or_404
from norm.services.rbac_service import require_client_access
from norm.services.reputation_service import analyze_trend
from norm.utils import get_date_range_params, utcnow

reputation_bp = Blueprint('reputation', __name__)


@reputation_bp.route('/trend', methods=['GET'])
@token_required
def reputation_trend(current_user):
    """
    GET /api/reputation/trend?client_id=<id>&days=30

    Returns the stored snapshots of the window (oldest first) and the
    direction of change between the first and the last of them.
    """
    client_id = request.args.get('client_id')
    if not client_id:
        raise ValidationError('client_id is required')

    require_client_access(current_user.id, client_id)
    get_client_or_404(client_id)

    days = get_date_range_params(request)
    now = utcnow()

    scores = DBReputationScore.query.filter(
        DBReputationScore.client_id == client_id,
        DBReputationScore.calculated_at >= now - timedelta(days=days)
    ).order_by(DBReputationScore.calculated_at).all()

    return jsonify({
        'client_id': client_id,
        'scores': [s.to_dict() for s in scores],
        'trend': analyze_trend(scores, period_days=days, now=now)
    })
