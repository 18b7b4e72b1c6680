"""
nORM - Client Management Routes
Clients, their SERP keywords, reputation and search results
"""
import logging

from flask import Blueprint, request, jsonify

from norm.database import db
from norm.errors import NotFoundError, ValidationError
from norm.models.db_models import DBClient, DBKeyword, DBUser, ClientRole
from norm.routes.auth import token_required
from norm.services.ai_service import get_ai_service
from norm.services.rbac_service import (
    add_client_member, get_client_members, get_user_clients, remove_client_member, require_client_access,
    set_client_member_role
)
from norm.services.reputation_service import get_reputation_analysis_input, get_reputation_overview
from norm.services.serp_service import get_serp_service
from norm.utils import safe_bool, safe_int, utcnow

logger = logging.getLogger(__name__)

clients_bp = Blueprint('clients', __name__)

KEYWORD_PRIORITIES = ('high', 'normal', 'low')


def get_client_or_404(client_id: str) -> DBClient:
    client = db.session.get(DBClient, client_id)
    if not client or not client.is_active:
        raise NotFoundError('Client', client_id)
    return client


def _get_keyword_or_404(client_id: str, keyword_id: str) -> DBKeyword:
    keyword = db.session.get(DBKeyword, keyword_id)
    if not keyword or keyword.client_id != client_id:
        raise NotFoundError('Keyword', keyword_id)
    return keyword


def _validate_threshold(value):
    threshold = safe_int(value, default=-1)
    if threshold < 1 or threshold > 100:
        raise ValidationError('alert_threshold must be between 1 and 100')
    return threshold


@clients_bp.route('', methods=['GET'])
@token_required
def list_clients(current_user):
    """List the active clients the user belongs to"""
    client_ids = get_user_clients(current_user.id)
    clients = []
    if client_ids:
        clients = DBClient.query.filter(
            DBClient.id.in_(client_ids),
            DBClient.is_active.is_(True)
        ).order_by(DBClient.name).all()

    return jsonify({
        'total': len(clients),
        'clients': [c.to_dict() for c in clients]
    })


@clients_bp.route('', methods=['POST'])
@token_required
def create_client(current_user):
    """
    Create a new client; the creator becomes its admin

    POST /api/clients
    {
        "name": "Empresa XYZ",
        "industry": "varejo",
        "website": "https://xyz.com.br",
        "monitoring_keywords": ["Empresa XYZ", "XYZ reclamação"]
    }
    """
    data = request.get_json(silent=True) or {}

    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('name is required')

    client = DBClient(
        name=name,
        industry=data.get('industry', ''),
        website=data.get('website'),
        monitoring_keywords=data.get('monitoring_keywords', []),
        created_by=current_user.id
    )
    db.session.add(client)
    add_client_member(client.id, current_user.id, ClientRole.ADMIN)
    db.session.commit()
    logger.info(f"Client {client.id} created by {current_user.id}")

    return jsonify({
        'message': 'Client created successfully',
        'client': client.to_dict()
    }), 201


@clients_bp.route('/<client_id>', methods=['GET'])
@token_required
def get_client(current_user, client_id):
    require_client_access(current_user.id, client_id)
    client = get_client_or_404(client_id)
    return jsonify({'client': client.to_dict()})


@clients_bp.route('/<client_id>', methods=['PUT'])
@token_required
def update_client(current_user, client_id):
    """Update client fields (editor)"""
    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    client = get_client_or_404(client_id)

    data = request.get_json(silent=True) or {}

    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            raise ValidationError('name cannot be empty')
        client.name = name
    if 'industry' in data:
        client.industry = data['industry'] or ''
    if 'website' in data:
        client.website = data['website']
    if 'monitoring_keywords' in data:
        client.set_monitoring_keywords(data['monitoring_keywords'])

    client.updated_at = utcnow()
    db.session.commit()

    return jsonify({
        'message': 'Client updated',
        'client': client.to_dict()
    })


@clients_bp.route('/<client_id>', methods=['DELETE'])
@token_required
def delete_client(current_user, client_id):
    """Soft-delete a client (admin)"""
    require_client_access(current_user.id, client_id, ClientRole.ADMIN)
    client = get_client_or_404(client_id)

    client.is_active = False
    client.updated_at = utcnow()
    db.session.commit()
    logger.info(f"Client {client_id} deactivated by {current_user.id}")

    return jsonify({'message': 'Client deleted'})


# ==========================================
# Members
# ==========================================

def _member_dict(membership, user) -> dict:
    return {
        'user_id': user.id,
        'email': user.email,
        'name': user.name,
        'role': membership.role,
        'added_at': membership.created_at.isoformat() if membership.created_at else None
    }


@clients_bp.route('/<client_id>/members', methods=['GET'])
@token_required
def list_members(current_user, client_id):
    require_client_access(current_user.id, client_id, ClientRole.ADMIN)
    get_client_or_404(client_id)

    members = [_member_dict(m, u) for m, u in get_client_members(client_id)]
    return jsonify({'total': len(members), 'members': members})


@clients_bp.route('/<client_id>/members', methods=['POST'])
@token_required
def add_member(current_user, client_id):
    """
    Give an existing user a role on the client, or change their role

    POST /api/clients/<client_id>/members
    {"email": "editor@example.com", "role": "editor"}
    """
    require_client_access(current_user.id, client_id, ClientRole.ADMIN)
    get_client_or_404(client_id)

    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    if not email:
        raise ValidationError('email is required')

    user = DBUser.query.filter_by(email=email).first()
    if not user or not user.is_active:
        raise NotFoundError('User', email)

    membership = set_client_member_role(client_id, user.id, data.get('role', ClientRole.VIEWER))

    return jsonify({'member': _member_dict(membership, user)}), 201


@clients_bp.route('/<client_id>/members/<user_id>', methods=['DELETE'])
@token_required
def delete_member(current_user, client_id, user_id):
    require_client_access(current_user.id, client_id, ClientRole.ADMIN)
    get_client_or_404(client_id)

    remove_client_member(client_id, user_id)

    return jsonify({'message': 'Member removed'})


# ==========================================
# Keywords
# ==========================================

@clients_bp.route('/<client_id>/keywords', methods=['GET'])
@token_required
def list_keywords(current_user, client_id):
    require_client_access(current_user.id, client_id)
    get_client_or_404(client_id)

    query = DBKeyword.query.filter_by(client_id=client_id)
    if not safe_bool(request.args.get('include_inactive')):
        query = query.filter_by(is_active=True)
    keywords = query.order_by(DBKeyword.keyword).all()

    return jsonify({
        'total': len(keywords),
        'keywords': [k.to_dict() for k in keywords]
    })


@clients_bp.route('/<client_id>/keywords', methods=['POST'])
@token_required
def create_keyword(current_user, client_id):
    """
    Track a new SERP keyword

    POST /api/clients/<client_id>/keywords
    {"keyword": "empresa xyz", "priority": "high", "alert_threshold": 5}
    """
    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    get_client_or_404(client_id)

    data = request.get_json(silent=True) or {}
    text = (data.get('keyword') or '').strip()
    if not text:
        raise ValidationError('keyword is required')

    priority = data.get('priority', 'normal')
    if priority not in KEYWORD_PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(KEYWORD_PRIORITIES)}")

    threshold = _validate_threshold(data['alert_threshold']) if 'alert_threshold' in data else 5

    existing = DBKeyword.query.filter_by(client_id=client_id, keyword=text).first()
    if existing:
        raise ValidationError('Keyword already tracked for this client')

    keyword = DBKeyword(client_id=client_id, keyword=text, priority=priority, alert_threshold=threshold)
    db.session.add(keyword)
    db.session.commit()

    return jsonify({'keyword': keyword.to_dict()}), 201


@clients_bp.route('/<client_id>/keywords/<keyword_id>', methods=['PUT'])
@token_required
def update_keyword(current_user, client_id, keyword_id):
    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    keyword = _get_keyword_or_404(client_id, keyword_id)

    data = request.get_json(silent=True) or {}
    if 'priority' in data:
        if data['priority'] not in KEYWORD_PRIORITIES:
            raise ValidationError(f"priority must be one of: {', '.join(KEYWORD_PRIORITIES)}")
        keyword.priority = data['priority']
    if 'alert_threshold' in data:
        keyword.alert_threshold = _validate_threshold(data['alert_threshold'])
    if 'is_active' in data:
        keyword.is_active = safe_bool(data['is_active'])

    keyword.updated_at = utcnow()
    db.session.commit()

    return jsonify({'keyword': keyword.to_dict()})


@clients_bp.route('/<client_id>/keywords/<keyword_id>', methods=['DELETE'])
@token_required
def delete_keyword(current_user, client_id, keyword_id):
    """Stop tracking a keyword; its SERP history is kept"""
    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    keyword = _get_keyword_or_404(client_id, keyword_id)

    keyword.is_active = False
    keyword.updated_at = utcnow()
    db.session.commit()

    return jsonify({'message': 'Keyword deleted'})


# ==========================================
# Reputation & SERP
# ==========================================

@clients_bp.route('/<client_id>/reputation', methods=['GET'])
@token_required
def client_reputation(current_user, client_id):
    """Current 30-day score, sub-score breakdown and trend against the prior window"""
    require_client_access(current_user.id, client_id)
    get_client_or_404(client_id)

    days = safe_int(request.args.get('days'), 30, min_val=1, max_val=365)
    return jsonify(get_reputation_overview(client_id, period_days=days))


@clients_bp.route('/<client_id>/reputation/analyze', methods=['POST'])
@token_required
def analyze_client_reputation(current_user, client_id):
    """AI assessment of the current window against the previous one: risks, opportunities, next steps"""
    require_client_access(current_user.id, client_id)
    client = get_client_or_404(client_id)

    days = safe_int(request.args.get('days'), 30, min_val=1, max_val=365)
    analysis_input = get_reputation_analysis_input(client_id, period_days=days)
    analysis = get_ai_service().analyze_reputation(client.name, analysis_input)

    return jsonify({
        'client_id': client_id,
        'period_start': analysis_input['period_start'].isoformat(),
        'period_end': analysis_input['period_end'].isoformat(),
        'current_score': analysis_input['current_score'],
        'previous_score': analysis_input['previous_score'],
        'analysis': analysis
    })


@clients_bp.route('/<client_id>/serp', methods=['GET'])
@token_required
def client_serp(current_user, client_id):
    """Latest SERP check per keyword"""
    require_client_access(current_user.id, client_id)
    get_client_or_404(client_id)

    limit = safe_int(request.args.get('limit'), 10, min_val=1, max_val=100)
    results = get_serp_service().get_latest_results(client_id, limit=limit)

    return jsonify({
        'client_id': client_id,
        'keywords': results
    })
