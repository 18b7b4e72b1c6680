"""
nORM - Alert Routes
List alerts across the user's clients and move them through their lifecycle
"""
from flask import Blueprint, request, jsonify

from norm.errors import ValidationError
from norm.models.db_models import DBAlert, AlertSeverity, AlertStatus, AlertType, ClientRole
from norm.routes.auth import token_required
from norm.services.alert_service import get_alert_or_404, update_alert_status
from norm.services.rbac_service import get_user_clients, require_client_access
from norm.utils import get_pagination_params

alerts_bp = Blueprint('alerts', __name__)


@alerts_bp.route('', methods=['GET'])
@token_required
def list_alerts(current_user):
    """
    GET /api/alerts?client_id=&status=&severity=&alert_type=&limit=&offset=
    """
    client_id = request.args.get('client_id')
    if client_id:
        require_client_access(current_user.id, client_id)
        client_ids = [client_id]
    else:
        client_ids = get_user_clients(current_user.id)

    limit, offset = get_pagination_params(request)

    if not client_ids:
        return jsonify({'alerts': [], 'total': 0, 'limit': limit, 'offset': offset})

    query = DBAlert.query.filter(DBAlert.client_id.in_(client_ids))

    status = request.args.get('status')
    if status:
        if status not in AlertStatus.ALL:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(AlertStatus.ALL)}")
        query = query.filter(DBAlert.status == status)

    severity = request.args.get('severity')
    if severity:
        if severity not in AlertSeverity.ALL:
            raise ValidationError(f"Invalid severity. Must be one of: {', '.join(AlertSeverity.ALL)}")
        query = query.filter(DBAlert.severity == severity)

    alert_type = request.args.get('alert_type')
    if alert_type:
        if alert_type not in AlertType.ALL:
            raise ValidationError(f"Invalid alert_type. Must be one of: {', '.join(AlertType.ALL)}")
        query = query.filter(DBAlert.alert_type == alert_type)

    total = query.count()
    alerts = query.order_by(DBAlert.created_at.desc()).offset(offset).limit(limit).all()

    return jsonify({
        'alerts': [a.to_dict() for a in alerts],
        'total': total,
        'limit': limit,
        'offset': offset
    })


@alerts_bp.route('/<alert_id>', methods=['PATCH'])
@token_required
def update_alert(current_user, alert_id):
    """
    Change an alert's status (editor)

    PATCH /api/alerts/<alert_id>
    {"status": "resolved"}  or  {"action": "acknowledge"}
    """
    alert = get_alert_or_404(alert_id)
    require_client_access(current_user.id, alert.client_id, ClientRole.EDITOR)

    data = request.get_json(silent=True) or {}
    status = data.get('status') or data.get('action')
    if not status:
        raise ValidationError('status is required')

    update_alert_status(alert, status, user_id=current_user.id)

    return jsonify({'alert': alert.to_dict()})
