"""
nORM - API Route Tests
"""
from datetime import timedelta
from unittest.mock import patch

import jwt

from norm.database import db
from norm.models.db_models import (
    DBClient, DBGeneratedContent, DBSocialAccount, DBSocialPost, ClientRole, Sentiment
)
from norm.services.alert_service import get_alert_recipients
from norm.services.rbac_service import (
    add_client_member, get_user_client_role, get_user_clients, has_client_access
)
from norm.utils import utcnow

from conftest import auth_headers, make_client, make_keyword, make_user


class TestErrorShape:

    def test_unknown_route(self, client, app):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        data = response.get_json()
        assert set(data) == {'error', 'message'}

    def test_method_not_allowed(self, client, app):
        response = client.delete('/api/auth/login')
        assert response.status_code == 405
        assert 'message' in response.get_json()

    def test_unhandled_exception(self, client, app):
        owner = make_user()
        with patch('norm.routes.clients.get_user_clients', side_effect=RuntimeError('db exploded')):
            response = client.get('/api/clients', headers=auth_headers(owner))

        assert response.status_code == 500
        assert response.get_json() == {
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred'
        }

    def test_expired_token(self, client, app):
        owner = make_user()
        token = jwt.encode(
            {'user_id': owner.id, 'exp': utcnow() - timedelta(hours=1)},
            app.config['JWT_SECRET_KEY'],
            algorithm='HS256'
        )
        response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401
        assert response.get_json()['message'] == 'Token has expired'

    def test_health(self, client, app):
        response = client.get('/health')
        assert response.get_json()['database'] == 'connected'


class TestAuth:

    def test_register_login_me(self, client, app):
        response = client.post('/api/auth/register', json={
            'email': 'Maria@Example.com', 'name': 'Maria', 'password': 'senha1234'
        })
        assert response.status_code == 201
        assert response.get_json()['user']['email'] == 'maria@example.com'

        response = client.post('/api/auth/login', json={'email': 'maria@example.com', 'password': 'senha1234'})
        assert response.status_code == 200
        token = response.get_json()['token']

        response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200
        assert response.get_json()['user']['name'] == 'Maria'

    def test_weak_password(self, client, app):
        response = client.post('/api/auth/register', json={
            'email': 'maria@example.com', 'name': 'Maria', 'password': 'short'
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'VALIDATION_ERROR'

    def test_duplicate_email(self, client, app):
        make_user('maria@example.com')
        response = client.post('/api/auth/register', json={
            'email': 'maria@example.com', 'name': 'Maria', 'password': 'senha1234'
        })
        assert response.status_code == 400

    def test_wrong_password(self, client, app):
        make_user('maria@example.com')
        response = client.post('/api/auth/login', json={'email': 'maria@example.com', 'password': 'wrong123'})

        assert response.status_code == 401
        assert response.get_json()['message'] == 'Invalid email or password'


class TestRBAC:

    def test_hierarchy(self, app):
        owner = make_user()
        editor = make_user('editor@example.com', 'Editor')
        acme = make_client(owner)
        add_client_member(acme.id, editor.id, ClientRole.EDITOR)
        db.session.commit()

        assert has_client_access(owner.id, acme.id, ClientRole.ADMIN)
        assert has_client_access(editor.id, acme.id, ClientRole.VIEWER)
        assert has_client_access(editor.id, acme.id, ClientRole.EDITOR)
        assert not has_client_access(editor.id, acme.id, ClientRole.ADMIN)
        assert not has_client_access('user_stranger', acme.id)

    def test_add_member_updates_role(self, app):
        owner = make_user()
        member = make_user('member@example.com', 'Member')
        acme = make_client(owner)
        add_client_member(acme.id, member.id, ClientRole.VIEWER)
        add_client_member(acme.id, member.id, ClientRole.EDITOR)
        db.session.commit()

        assert get_user_client_role(member.id, acme.id) == ClientRole.EDITOR
        assert get_user_clients(member.id) == [acme.id]


class TestClients:

    def test_creator_becomes_admin(self, client, app):
        owner = make_user()
        response = client.post('/api/clients', headers=auth_headers(owner), json={
            'name': 'Empresa XYZ',
            'website': 'https://xyz.com.br',
            'monitoring_keywords': 'Empresa XYZ, XYZ golpe'
        })

        assert response.status_code == 201
        created = response.get_json()['client']
        assert created['monitoring_keywords'] == ['Empresa XYZ', 'XYZ golpe']
        assert get_user_client_role(owner.id, created['id']) == ClientRole.ADMIN

        listed = client.get('/api/clients', headers=auth_headers(owner)).get_json()
        assert listed['total'] == 1

    def test_name_required(self, client, app):
        owner = make_user()
        response = client.post('/api/clients', headers=auth_headers(owner), json={})
        assert response.status_code == 400

    def test_viewer_cannot_update(self, client, app):
        owner = make_user()
        viewer = make_user('viewer@example.com', 'Viewer')
        acme = make_client(owner)
        add_client_member(acme.id, viewer.id, ClientRole.VIEWER)
        db.session.commit()

        assert client.get(f'/api/clients/{acme.id}', headers=auth_headers(viewer)).status_code == 200
        response = client.put(f'/api/clients/{acme.id}', headers=auth_headers(viewer), json={'name': 'Hacked'})
        assert response.status_code == 403

    def test_editor_updates_but_cannot_delete(self, client, app):
        owner = make_user()
        editor = make_user('editor@example.com', 'Editor')
        acme = make_client(owner)
        add_client_member(acme.id, editor.id, ClientRole.EDITOR)
        db.session.commit()

        response = client.put(f'/api/clients/{acme.id}', headers=auth_headers(editor), json={'industry': 'varejo'})
        assert response.status_code == 200
        assert response.get_json()['client']['industry'] == 'varejo'

        assert client.delete(f'/api/clients/{acme.id}', headers=auth_headers(editor)).status_code == 403

    def test_delete_is_soft(self, client, app):
        owner = make_user()
        acme = make_client(owner)

        response = client.delete(f'/api/clients/{acme.id}', headers=auth_headers(owner))

        assert response.status_code == 200
        assert db.session.get(DBClient, acme.id).is_active is False
        assert client.get(f'/api/clients/{acme.id}', headers=auth_headers(owner)).status_code == 404

    def test_stranger_forbidden(self, client, app):
        owner = make_user()
        stranger = make_user('stranger@example.com', 'Stranger')
        acme = make_client(owner)

        response = client.get(f'/api/clients/{acme.id}', headers=auth_headers(stranger))
        assert response.status_code == 403
        assert response.get_json()['error'] == 'FORBIDDEN'

class TestMembers:

    def test_admin_adds_editor_by_email(self, client, app):
        owner = make_user()
        editor = make_user('editor@example.com', 'Editor')
        acme = make_client(owner)

        response = client.post(f'/api/clients/{acme.id}/members', headers=auth_headers(owner),
                               json={'email': ' Editor@Example.com ', 'role': 'editor'})

        assert response.status_code == 201
        assert response.get_json()['member']['role'] == ClientRole.EDITOR
        assert get_user_client_role(editor.id, acme.id) == ClientRole.EDITOR
        assert sorted(get_alert_recipients(acme.id)) == ['editor@example.com', 'owner@example.com']

        # the new editor can now edit but still not delete
        response = client.put(f'/api/clients/{acme.id}', headers=auth_headers(editor), json={'industry': 'varejo'})
        assert response.status_code == 200
        assert client.delete(f'/api/clients/{acme.id}', headers=auth_headers(editor)).status_code == 403

        listed = client.get(f'/api/clients/{acme.id}/members', headers=auth_headers(owner)).get_json()
        assert [(m['email'], m['role']) for m in listed['members']] == [
            ('owner@example.com', ClientRole.ADMIN),
            ('editor@example.com', ClientRole.EDITOR),
        ]

    def test_change_role_and_remove(self, client, app):
        owner = make_user()
        member = make_user('member@example.com', 'Member')
        acme = make_client(owner)
        add_client_member(acme.id, member.id, ClientRole.EDITOR)
        db.session.commit()

        response = client.post(f'/api/clients/{acme.id}/members', headers=auth_headers(owner),
                               json={'email': 'member@example.com', 'role': 'viewer'})
        assert response.status_code == 201
        assert get_user_client_role(member.id, acme.id) == ClientRole.VIEWER

        response = client.delete(f'/api/clients/{acme.id}/members/{member.id}', headers=auth_headers(owner))
        assert response.status_code == 200
        assert get_user_client_role(member.id, acme.id) is None
        assert client.get(f'/api/clients/{acme.id}', headers=auth_headers(member)).status_code == 403

    def test_non_admins_cannot_manage_members(self, client, app):
        owner = make_user()
        editor = make_user('editor@example.com', 'Editor')
        viewer = make_user('viewer@example.com', 'Viewer')
        acme = make_client(owner)
        add_client_member(acme.id, editor.id, ClientRole.EDITOR)
        add_client_member(acme.id, viewer.id, ClientRole.VIEWER)
        db.session.commit()

        for user in (editor, viewer):
            headers = auth_headers(user)
            assert client.get(f'/api/clients/{acme.id}/members', headers=headers).status_code == 403
            response = client.post(f'/api/clients/{acme.id}/members', headers=headers,
                                   json={'email': 'viewer@example.com', 'role': 'admin'})
            assert response.status_code == 403
            response = client.delete(f'/api/clients/{acme.id}/members/{owner.id}', headers=headers)
            assert response.status_code == 403

        assert get_user_client_role(viewer.id, acme.id) == ClientRole.VIEWER

    def test_last_admin_is_kept(self, client, app):
        owner = make_user()
        acme = make_client(owner)

        response = client.post(f'/api/clients/{acme.id}/members', headers=auth_headers(owner),
                               json={'email': 'owner@example.com', 'role': 'viewer'})
        assert response.status_code == 400

        response = client.delete(f'/api/clients/{acme.id}/members/{owner.id}', headers=auth_headers(owner))
        assert response.status_code == 400
        assert get_user_client_role(owner.id, acme.id) == ClientRole.ADMIN

    def test_second_admin_allows_demotion(self, client, app):
        owner = make_user()
        partner = make_user('partner@example.com', 'Partner')
        acme = make_client(owner)
        add_client_member(acme.id, partner.id, ClientRole.ADMIN)
        db.session.commit()

        response = client.post(f'/api/clients/{acme.id}/members', headers=auth_headers(partner),
                               json={'email': 'owner@example.com', 'role': 'editor'})

        assert response.status_code == 201
        assert get_user_client_role(owner.id, acme.id) == ClientRole.EDITOR

    def test_validation(self, client, app):
        owner = make_user()
        make_user('someone@example.com', 'Someone')
        acme = make_client(owner)
        headers = auth_headers(owner)

        response = client.post(f'/api/clients/{acme.id}/members', headers=headers,
                               json={'email': 'nobody@example.com', 'role': 'editor'})
        assert response.status_code == 404

        response = client.post(f'/api/clients/{acme.id}/members', headers=headers,
                               json={'email': 'someone@example.com', 'role': 'owner'})
        assert response.status_code == 400

        assert client.post(f'/api/clients/{acme.id}/members', headers=headers, json={}).status_code == 400
        assert client.delete(f'/api/clients/{acme.id}/members/user_missing', headers=headers).status_code == 404



class TestKeywords:

    def test_crud(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        headers = auth_headers(owner)

        response = client.post(f'/api/clients/{acme.id}/keywords', headers=headers,
                               json={'keyword': 'empresa xyz', 'priority': 'high', 'alert_threshold': 3})
        assert response.status_code == 201
        keyword_id = response.get_json()['keyword']['id']

        response = client.put(f'/api/clients/{acme.id}/keywords/{keyword_id}', headers=headers,
                              json={'alert_threshold': 8})
        assert response.get_json()['keyword']['alert_threshold'] == 8

        assert client.delete(f'/api/clients/{acme.id}/keywords/{keyword_id}', headers=headers).status_code == 200
        listed = client.get(f'/api/clients/{acme.id}/keywords', headers=headers).get_json()
        assert listed['total'] == 0

    def test_validation(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        make_keyword(acme, 'empresa xyz')
        headers = auth_headers(owner)

        assert client.post(f'/api/clients/{acme.id}/keywords', headers=headers,
                           json={'keyword': 'x', 'priority': 'urgent'}).status_code == 400
        assert client.post(f'/api/clients/{acme.id}/keywords', headers=headers,
                           json={'keyword': 'x', 'alert_threshold': 0}).status_code == 400
        assert client.post(f'/api/clients/{acme.id}/keywords', headers=headers,
                           json={'keyword': 'empresa xyz'}).status_code == 400

    def test_keyword_of_other_client(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        other = make_client(owner, name='Other')
        kw = make_keyword(other)

        response = client.put(f'/api/clients/{acme.id}/keywords/{kw.id}', headers=auth_headers(owner),
                              json={'priority': 'low'})
        assert response.status_code == 404


class TestSocialMentions:

    def test_feed_filters(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        account = DBSocialAccount(acme.id, 'facebook', 'page-1')
        db.session.add(account)
        db.session.add(DBSocialPost(account.id, 'facebook', 'p1', sentiment=Sentiment.NEGATIVE,
                                    published_at=utcnow() - timedelta(hours=1)))
        db.session.add(DBSocialPost(account.id, 'facebook', 'p2', sentiment=Sentiment.POSITIVE,
                                    published_at=utcnow()))
        db.session.commit()

        data = client.get('/api/social/mentions', headers=auth_headers(owner)).get_json()
        assert data['total'] == 2
        assert data['mentions'][0]['post_id'] == 'p2'

        data = client.get('/api/social/mentions?sentiment=negative', headers=auth_headers(owner)).get_json()
        assert [m['post_id'] for m in data['mentions']] == ['p1']

    def test_invalid_platform(self, client, app):
        owner = make_user()
        response = client.get('/api/social/mentions?platform=myspace', headers=auth_headers(owner))
        assert response.status_code == 400


class TestContent:

    def test_generate_saves_drafts(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        make_keyword(acme, 'empresa xyz')

        articles = [{
            'title': f'Artigo {i}', 'body': '<p>Texto</p>', 'meta_description': 'Resumo',
            'target_keywords': ['empresa xyz'], 'word_count': 1, 'seo_score': 30, 'sentiment_score': 0.5
        } for i in range(2)]

        with patch('norm.services.ai_service.AIService.generate_content', return_value=articles) as generate:
            response = client.post('/api/content/generate', headers=auth_headers(owner), json={
                'client_id': acme.id, 'topic': 'Atendimento', 'article_count': 2
            })

        assert response.status_code == 201
        assert len(response.get_json()['articles']) == 2
        assert generate.call_args.kwargs['target_keywords'] == ['empresa xyz']
        assert DBGeneratedContent.query.filter_by(client_id=acme.id).count() == 2

        listed = client.get(f'/api/content?client_id={acme.id}', headers=auth_headers(owner)).get_json()
        assert listed['total'] == 2
        assert 'body' not in listed['content'][0]

        content_id = listed['content'][0]['id']
        detail = client.get(f'/api/content/{content_id}', headers=auth_headers(owner)).get_json()
        assert detail['content']['body'] == '<p>Texto</p>'
        assert detail['content']['sentiment_score'] == 0.5

    def test_article_count_bounds(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        response = client.post('/api/content/generate', headers=auth_headers(owner), json={
            'client_id': acme.id, 'topic': 'Atendimento', 'article_count': 9
        })
        assert response.status_code == 400

    def test_all_articles_failing(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        with patch('norm.services.ai_service.AIService.generate_content', return_value=[]):
            response = client.post('/api/content/generate', headers=auth_headers(owner), json={
                'client_id': acme.id, 'topic': 'Atendimento', 'article_count': 1
            })

        assert response.status_code == 502
        assert response.get_json()['error'] == 'EXTERNAL_API_ERROR'

    def test_stream(self, client, app):
        owner = make_user()
        acme = make_client(owner)

        with patch('norm.services.ai_service.AIService.stream_content', return_value=iter(['# Título', '\nTexto'])):
            response = client.post('/api/content/generate-stream', headers=auth_headers(owner), json={
                'client_id': acme.id, 'topic': 'Atendimento', 'keywords': ['xyz']
            })
            body = response.get_data(as_text=True)

        assert response.mimetype == 'text/event-stream'
        assert body.startswith('data: {"content": "# Título"}\n\n')
        assert body.endswith('data: [DONE]\n\n')
