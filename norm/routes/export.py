"""
nORM - Export Routes
CSV downloads of clients, alerts and reputation history
"""
from datetime import timedelta

from flask import Blueprint, Response, request

from norm.models.db_models import DBAlert, DBClient, DBReputationScore
from norm.routes.auth import token_required
from norm.services.export_service import alerts_to_csv, clients_to_csv, reputation_to_csv
from norm.services.rbac_service import get_user_clients, require_client_access
from norm.utils import get_date_range_params, utcnow

export_bp = Blueprint('export', __name__)

MAX_EXPORT_ROWS = 10000


def _csv_response(body: str, name: str) -> Response:
    filename = f"{name}-{utcnow().strftime('%Y-%m-%d')}.csv"
    return Response(
        body,
        content_type='text/csv;charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )


def _scoped_client_ids(current_user):
    client_id = request.args.get('client_id')
    if client_id:
        require_client_access(current_user.id, client_id)
        return [client_id]
    return get_user_clients(current_user.id)


def _client_names(client_ids):
    if not client_ids:
        return {}
    clients = DBClient.query.filter(DBClient.id.in_(client_ids)).all()
    return {c.id: c.name for c in clients}


@export_bp.route('/clients', methods=['GET'])
@token_required
def export_clients(current_user):
    client_ids = get_user_clients(current_user.id)
    clients = []
    if client_ids:
        clients = DBClient.query.filter(
            DBClient.id.in_(client_ids),
            DBClient.is_active.is_(True)
        ).order_by(DBClient.name).all()
    return _csv_response(clients_to_csv(clients), 'clients')


@export_bp.route('/alerts', methods=['GET'])
@token_required
def export_alerts(current_user):
    """GET /api/export/alerts?client_id=&days=30"""
    client_ids = _scoped_client_ids(current_user)
    days = get_date_range_params(request)

    alerts = []
    if client_ids:
        alerts = DBAlert.query.filter(
            DBAlert.client_id.in_(client_ids),
            DBAlert.created_at >= utcnow() - timedelta(days=days)
        ).order_by(DBAlert.created_at.desc()).limit(MAX_EXPORT_ROWS).all()

    return _csv_response(alerts_to_csv(alerts, _client_names(client_ids)), 'alerts')


@export_bp.route('/reputation', methods=['GET'])
@token_required
def export_reputation(current_user):
    """GET /api/export/reputation?client_id=&days=90"""
    client_ids = _scoped_client_ids(current_user)
    days = get_date_range_params(request, default_days=90)

    scores = []
    if client_ids:
        scores = DBReputationScore.query.filter(
            DBReputationScore.client_id.in_(client_ids),
            DBReputationScore.calculated_at >= utcnow() - timedelta(days=days)
        ).order_by(DBReputationScore.calculated_at.desc()).limit(MAX_EXPORT_ROWS).all()

    return _csv_response(reputation_to_csv(scores, _client_names(client_ids)), 'reputation')
