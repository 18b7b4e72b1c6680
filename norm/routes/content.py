"""
nORM - Content Routes
AI counter-content generation, streaming and drafts
"""
import json
import logging
import time

from flask import Blueprint, Response, request, jsonify, stream_with_context

from norm.database import db
from norm.errors import ExternalAPIError, NotFoundError, ValidationError
from norm.models.db_models import DBGeneratedContent, DBKeyword, DBNewsMention, ClientRole, ContentStatus
from norm.routes.auth import token_required
from norm.routes.clients import get_client_or_404
from norm.services.ai_service import get_ai_service
from norm.services.rbac_service import get_user_clients, require_client_access
from norm.utils import get_pagination_params, safe_int

logger = logging.getLogger(__name__)

content_bp = Blueprint('content', __name__)

MAX_ARTICLES = 5


def _target_keywords(data, client):
    keywords = data.get('target_keywords') or data.get('keywords')
    if isinstance(keywords, str):
        keywords = [k.strip() for k in keywords.split(',') if k.strip()]
    if keywords:
        return keywords
    tracked = DBKeyword.query.filter_by(client_id=client.id, is_active=True).limit(5).all()
    return [k.keyword for k in tracked] or client.get_monitoring_keywords()[:5] or [client.name]


@content_bp.route('/generate', methods=['POST'])
@token_required
def generate(current_user):
    """
    Generate SEO articles and save them as drafts

    POST /api/content/generate
    {
        "client_id": "client_abc",
        "topic": "Atendimento ao cliente",
        "article_count": 3,
        "target_keywords": ["empresa xyz"],
        "trigger_mention_id": "mention_abc"
    }
    """
    started = time.time()
    data = request.get_json(silent=True) or {}

    client_id = data.get('client_id')
    topic = (data.get('topic') or '').strip()
    if not client_id or not topic:
        raise ValidationError('client_id and topic are required')

    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    client = get_client_or_404(client_id)

    article_count = safe_int(data.get('article_count'), 3)
    if article_count < 1 or article_count > MAX_ARTICLES:
        raise ValidationError(f'article_count must be between 1 and {MAX_ARTICLES}')

    mention = None
    if data.get('trigger_mention_id'):
        mention = db.session.get(DBNewsMention, data['trigger_mention_id'])
        if not mention or mention.client_id != client_id:
            raise NotFoundError('Mention', data['trigger_mention_id'])

    articles = get_ai_service().generate_content(
        client_name=client.name,
        topic=topic,
        target_keywords=_target_keywords(data, client),
        article_count=article_count,
        trigger_title=mention.title if mention else None,
        trigger_url=mention.url if mention else None
    )
    if not articles:
        raise ExternalAPIError('OpenAI', 'Content generation failed for every article')

    saved = []
    for article in articles:
        content = DBGeneratedContent(
            client_id=client_id,
            title=article['title'],
            body=article['body'],
            meta_description=article['meta_description'],
            target_keywords=article['target_keywords'],
            seo_score=article['seo_score'],
            sentiment_score=article.get('sentiment_score'),
            word_count=article['word_count'],
            trigger_mention_id=mention.id if mention else None,
            created_by=current_user.id
        )
        db.session.add(content)
        saved.append(content)
    db.session.commit()

    return jsonify({
        'articles': [c.to_dict() for c in saved],
        'generation_time_ms': int((time.time() - started) * 1000)
    }), 201


@content_bp.route('/generate-stream', methods=['POST'])
@token_required
def generate_stream(current_user):
    """
    Stream a markdown article as Server-Sent Events

    POST /api/content/generate-stream
    {"client_id": "client_abc", "topic": "...", "keywords": [...], "tone": "professional", "length": "medium"}

    Events: data: {"content": "<chunk>"} ... data: [DONE]
    """
    data = request.get_json(silent=True) or {}

    client_id = data.get('client_id')
    topic = (data.get('topic') or '').strip()
    if not client_id or not topic:
        raise ValidationError('client_id and topic are required')

    require_client_access(current_user.id, client_id, ClientRole.EDITOR)
    client = get_client_or_404(client_id)

    ai = get_ai_service()
    prompt = ai.build_stream_prompt(
        topic,
        _target_keywords(data, client),
        tone=data.get('tone', 'professional'),
        length=data.get('length', 'medium')
    )

    def events():
        try:
            for chunk in ai.stream_content(prompt):
                yield f"data: {json.dumps({'content': chunk}, ensure_ascii=False)}\n\n"
        except ExternalAPIError as e:
            logger.error(f"Content stream failed for client {client_id}: {e}")
            yield f"event: error\ndata: {json.dumps(e.to_dict())}\n\n"
            return
        yield "data: [DONE]\n\n"

    return Response(
        stream_with_context(events()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
            'X-Content-Type': 'seo-article'
        }
    )


@content_bp.route('', methods=['GET'])
@token_required
def list_content(current_user):
    """GET /api/content?client_id=&status=&limit=&offset="""
    client_id = request.args.get('client_id')
    if client_id:
        require_client_access(current_user.id, client_id)
        client_ids = [client_id]
    else:
        client_ids = get_user_clients(current_user.id)

    limit, offset = get_pagination_params(request)

    if not client_ids:
        return jsonify({'content': [], 'total': 0, 'limit': limit, 'offset': offset})

    query = DBGeneratedContent.query.filter(DBGeneratedContent.client_id.in_(client_ids))

    status = request.args.get('status')
    if status:
        if status not in ContentStatus.ALL:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(ContentStatus.ALL)}")
        query = query.filter(DBGeneratedContent.status == status)

    total = query.count()
    items = query.order_by(DBGeneratedContent.generated_at.desc()).offset(offset).limit(limit).all()

    return jsonify({
        'content': [c.to_dict(include_body=False) for c in items],
        'total': total,
        'limit': limit,
        'offset': offset
    })


@content_bp.route('/<content_id>', methods=['GET'])
@token_required
def get_content(current_user, content_id):
    content = db.session.get(DBGeneratedContent, content_id)
    if not content:
        raise NotFoundError('Content', content_id)
    require_client_access(current_user.id, content.client_id)

    return jsonify({'content': content.to_dict()})
