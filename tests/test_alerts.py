"""
nORM - Alert Tests
"""
from datetime import timedelta

import pytest

from norm.database import db
from norm.errors import ValidationError
from norm.models.db_models import (
    DBAlert, DBNewsMention, DBSERPResult, DBSocialAccount, DBSocialPost,
    AlertSeverity, AlertStatus, AlertType, ClientRole, Sentiment
)
from norm.services.alert_service import (
    AlertGenerator, generate_alerts_for_client, get_alert_recipients,
    get_severity_from_score_drop, update_alert_status
)
from norm.services.rbac_service import add_client_member
from norm.utils import utcnow

from conftest import auth_headers, make_client, make_keyword, make_user


class TestSeverity:

    @pytest.mark.parametrize('drop,expected', [
        (0, AlertSeverity.LOW),
        (2.99, AlertSeverity.LOW),
        (3, AlertSeverity.MEDIUM),
        (4.99, AlertSeverity.MEDIUM),
        (5, AlertSeverity.HIGH),
        (9.99, AlertSeverity.HIGH),
        (10, AlertSeverity.CRITICAL),
        (42, AlertSeverity.CRITICAL),
    ])
    def test_boundaries(self, drop, expected):
        assert get_severity_from_score_drop(drop) == expected


class TestScoreDropAlerts:

    def test_no_comparison_no_alert(self, app):
        assert AlertGenerator('client_x').score_drop_alerts(None) == []

    def test_small_drop_ignored(self, app):
        alerts = AlertGenerator('client_x').score_drop_alerts({'current': 68.0, 'previous': 70.5})
        assert alerts == []

    def test_drop_of_three_is_medium(self, app):
        alerts = AlertGenerator('client_x').score_drop_alerts({'current': 67.0, 'previous': 70.0})

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.SCORE_DROP
        assert alerts[0].severity == AlertSeverity.MEDIUM

    def test_large_drop_is_critical(self, app):
        alerts = AlertGenerator('client_x').score_drop_alerts({'current': 55.0, 'previous': 70.0})

        assert alerts[0].alert_type == AlertType.CRITICAL
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_score_rise_ignored(self, app):
        assert AlertGenerator('client_x').score_drop_alerts({'current': 80.0, 'previous': 70.0}) == []


class TestMentionAlerts:

    def test_negative_news_alerted_once(self, app):
        acme = make_client()
        db.session.add(DBNewsMention(acme.id, 'Escândalo', 'https://news.example/1',
                                     source='Folha', sentiment=Sentiment.NEGATIVE, sentiment_score=-0.8))
        db.session.add(DBNewsMention(acme.id, 'Elogio', 'https://news.example/2',
                                     sentiment=Sentiment.POSITIVE, sentiment_score=0.8))
        db.session.commit()

        first = generate_alerts_for_client(acme.id)
        second = generate_alerts_for_client(acme.id)

        assert len(first) == 1
        assert first[0].alert_type == AlertType.NEGATIVE_MENTION
        assert first[0].severity == AlertSeverity.HIGH
        assert second == []
        assert DBAlert.query.filter_by(client_id=acme.id).count() == 1

    def test_old_news_ignored(self, app):
        acme = make_client()
        db.session.add(DBNewsMention(acme.id, 'Old', 'https://news.example/old',
                                     sentiment=Sentiment.NEGATIVE,
                                     scraped_at=utcnow() - timedelta(days=2)))
        db.session.commit()

        assert generate_alerts_for_client(acme.id) == []

    def test_negative_social_post(self, app):
        acme = make_client()
        account = DBSocialAccount(acme.id, 'instagram', 'ig-1')
        db.session.add(account)
        db.session.add(DBSocialPost(account.id, 'instagram', 'p-1', author_name='hater',
                                    sentiment=Sentiment.NEGATIVE, sentiment_score=-0.9))
        db.session.commit()

        alerts = generate_alerts_for_client(acme.id)

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.SOCIAL_NEGATIVE
        assert alerts[0].severity == AlertSeverity.MEDIUM
        assert alerts[0].related_social_post_id is not None
        assert generate_alerts_for_client(acme.id) == []


class TestTopResultAlerts:

    def test_negative_article_in_top_three(self, app):
        acme = make_client()
        kw = make_keyword(acme)
        checked_at = utcnow()
        bad_url = 'https://news.example/escandalo'

        # Mention is older than 24h so only the SERP check fires
        db.session.add(DBNewsMention(acme.id, 'Escândalo', bad_url, sentiment=Sentiment.NEGATIVE,
                                     scraped_at=checked_at - timedelta(days=3)))
        db.session.add(DBSERPResult(keyword_id=kw.id, position=2, url=bad_url, checked_at=checked_at))
        db.session.add(DBSERPResult(keyword_id=kw.id, position=5, url='https://other.example',
                                    checked_at=checked_at))
        db.session.commit()

        alerts = generate_alerts_for_client(acme.id)

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.CRITICAL
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert 'Top 2' in alerts[0].title
        assert generate_alerts_for_client(acme.id) == []

    def test_negative_article_below_top_three(self, app):
        acme = make_client()
        kw = make_keyword(acme)
        bad_url = 'https://news.example/escandalo'
        db.session.add(DBNewsMention(acme.id, 'Escândalo', bad_url, sentiment=Sentiment.NEGATIVE,
                                     scraped_at=utcnow() - timedelta(days=3)))
        db.session.add(DBSERPResult(keyword_id=kw.id, position=4, url=bad_url))
        db.session.commit()

        assert generate_alerts_for_client(acme.id) == []


class TestAlertStatus:

    def _alert(self, client_id):
        alert = DBAlert(client_id, AlertType.SCORE_DROP, AlertSeverity.HIGH, 'Drop')
        db.session.add(alert)
        db.session.commit()
        return alert

    def test_resolve_records_who_and_when(self, app):
        alert = self._alert('client_x')
        update_alert_status(alert, 'resolve', user_id='user_1')

        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_by == 'user_1'
        assert alert.resolved_at is not None

    def test_reopen_clears_resolution(self, app):
        alert = self._alert('client_x')
        update_alert_status(alert, AlertStatus.RESOLVED, user_id='user_1')
        update_alert_status(alert, 'reopen')

        assert alert.status == AlertStatus.ACTIVE
        assert alert.resolved_at is None

    def test_invalid_status(self, app):
        alert = self._alert('client_x')
        with pytest.raises(ValidationError):
            update_alert_status(alert, 'archived')


class TestRecipients:

    def test_admins_and_editors_only(self, app):
        owner = make_user('owner@example.com')
        editor = make_user('editor@example.com', 'Editor')
        viewer = make_user('viewer@example.com', 'Viewer')
        acme = make_client(owner)
        add_client_member(acme.id, editor.id, ClientRole.EDITOR)
        add_client_member(acme.id, viewer.id, ClientRole.VIEWER)
        db.session.commit()

        assert sorted(get_alert_recipients(acme.id)) == ['editor@example.com', 'owner@example.com']


class TestAlertRoutes:

    def test_list_filters_by_status(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        db.session.add(DBAlert(acme.id, AlertType.SCORE_DROP, AlertSeverity.HIGH, 'Open'))
        db.session.add(DBAlert(acme.id, AlertType.SCORE_DROP, AlertSeverity.LOW, 'Closed',
                               status=AlertStatus.RESOLVED))
        db.session.commit()

        response = client.get('/api/alerts?status=active', headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.get_json()
        assert data['total'] == 1
        assert data['alerts'][0]['title'] == 'Open'

    def test_other_clients_hidden(self, client, app):
        owner = make_user()
        stranger = make_user('stranger@example.com', 'Stranger')
        acme = make_client(owner)
        db.session.add(DBAlert(acme.id, AlertType.SCORE_DROP, AlertSeverity.HIGH, 'Open'))
        db.session.commit()

        response = client.get('/api/alerts', headers=auth_headers(stranger))
        assert response.get_json()['total'] == 0

        response = client.get(f'/api/alerts?client_id={acme.id}', headers=auth_headers(stranger))
        assert response.status_code == 403

    def test_patch_requires_editor(self, client, app):
        owner = make_user()
        viewer = make_user('viewer@example.com', 'Viewer')
        acme = make_client(owner)
        add_client_member(acme.id, viewer.id, ClientRole.VIEWER)
        alert = DBAlert(acme.id, AlertType.SCORE_DROP, AlertSeverity.HIGH, 'Open')
        db.session.add(alert)
        db.session.commit()

        response = client.patch(f'/api/alerts/{alert.id}', json={'status': 'acknowledged'},
                                headers=auth_headers(viewer))
        assert response.status_code == 403
        assert response.get_json()['error'] == 'FORBIDDEN'

        response = client.patch(f'/api/alerts/{alert.id}', json={'action': 'acknowledge'},
                                headers=auth_headers(owner))
        assert response.status_code == 200
        assert response.get_json()['alert']['status'] == AlertStatus.ACKNOWLEDGED

    def test_patch_unknown_alert(self, client, app):
        owner = make_user()
        response = client.patch('/api/alerts/alert_missing', json={'status': 'resolved'},
                                headers=auth_headers(owner))

        assert response.status_code == 404
        assert response.get_json()['error'] == 'NOT_FOUND'
