"""
nORM - Reputation Score Tests
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from norm.database import db
from norm.models.db_models import (
    DBNewsMention, DBReputationScore, DBSERPResult, DBSocialAccount, DBSocialPost, ClientRole, Sentiment
)
from norm.services.rbac_service import add_client_member
from norm.services.reputation_service import (
    NEUTRAL_SUBSCORE, analyze_trend, calculate_reputation_score, calculate_trend,
    combine_subscores, get_latest_score, get_reputation_analysis_input, get_reputation_overview,
    record_reputation_score, trend_subscore, volume_subscore
)
from norm.utils import utcnow

from conftest import make_client, make_keyword, make_user


NOW = datetime(2024, 6, 30, 12, 0, 0)


def snapshot(client_id, score, calculated_at):
    return DBReputationScore(
        client_id=client_id,
        score=score,
        breakdown={},
        period_start=calculated_at - timedelta(days=30),
        period_end=calculated_at,
        calculated_at=calculated_at
    )


class TestCalculateTrend:

    @pytest.mark.parametrize('current,previous,expected', [
        (72.0, 70.0, 'stable'),
        (68.0, 70.0, 'stable'),
        (70.0, 70.0, 'stable'),
        (72.01, 70.0, 'up'),
        (67.99, 70.0, 'down'),
        (90.0, 10.0, 'up'),
    ])
    def test_threshold_is_two_points(self, current, previous, expected):
        assert calculate_trend(current, previous) == expected


class TestSubscores:

    def test_trend_subscore_neutral_without_both_halves(self):
        start, end = NOW - timedelta(days=30), NOW
        recent_only = [(NOW - timedelta(days=1), 0.8, Sentiment.POSITIVE)]
        assert trend_subscore(recent_only, start, end) == NEUTRAL_SUBSCORE
        assert trend_subscore([], start, end) == NEUTRAL_SUBSCORE

    def test_trend_subscore_rewards_improvement(self):
        start, end = NOW - timedelta(days=30), NOW
        signals = [
            (NOW - timedelta(days=20), -0.5, Sentiment.NEGATIVE),
            (NOW - timedelta(days=2), 0.5, Sentiment.POSITIVE),
        ]
        assert trend_subscore(signals, start, end) == 10.0

    def test_trend_subscore_is_clamped(self):
        start, end = NOW - timedelta(days=30), NOW
        signals = [
            (NOW - timedelta(days=20), 1.0, Sentiment.POSITIVE),
            (NOW - timedelta(days=2), -1.0, Sentiment.NEGATIVE),
        ]
        assert trend_subscore(signals, start, end) == 0.0

    def test_volume_subscore(self):
        signals = [
            (NOW, 0.5, Sentiment.POSITIVE),
            (NOW, 0.5, Sentiment.POSITIVE),
            (NOW, 0.5, Sentiment.POSITIVE),
            (NOW, -0.5, Sentiment.NEGATIVE),
            (NOW, 0.0, Sentiment.NEUTRAL),
        ]
        assert volume_subscore(signals) == 7.5
        assert volume_subscore([(NOW, 0.0, Sentiment.NEUTRAL)]) == NEUTRAL_SUBSCORE

    def test_combine_bounds(self):
        names = ['serp', 'news', 'social', 'trend', 'volume']
        assert combine_subscores({n: 0.0 for n in names}) == 0.0
        assert combine_subscores({n: 10.0 for n in names}) == 100.0
        assert combine_subscores({n: NEUTRAL_SUBSCORE for n in names}) == 50.0


class TestCalculateReputationScore:

    def test_no_data_is_neutral(self, app):
        acme = make_client()
        result = calculate_reputation_score(acme.id, NOW - timedelta(days=30), NOW)

        assert result['score'] == 50.0
        assert set(result['breakdown'].values()) == {NEUTRAL_SUBSCORE}

    def test_score_in_bounds_with_data(self, app):
        acme = make_client()
        kw = make_keyword(acme)
        now = utcnow()
        db.session.add(DBSERPResult(keyword_id=kw.id, position=1, url='https://xyz.com.br',
                                    is_client_content=True, checked_at=now - timedelta(days=1)))
        db.session.add(DBNewsMention(acme.id, 'Bad news', 'https://news.example/bad',
                                     sentiment=Sentiment.NEGATIVE, sentiment_score=-1.0,
                                     scraped_at=now - timedelta(days=2)))
        account = DBSocialAccount(acme.id, 'facebook', 'page-1')
        db.session.add(account)
        db.session.add(DBSocialPost(account.id, 'facebook', 'p1', sentiment=Sentiment.POSITIVE,
                                    sentiment_score=1.0, published_at=now - timedelta(days=3)))
        db.session.commit()

        result = calculate_reputation_score(acme.id, now - timedelta(days=30), now)

        assert result['breakdown']['serp'] == 10.0
        assert result['breakdown']['news'] == 0.0
        assert result['breakdown']['social'] == 10.0
        for value in result['breakdown'].values():
            assert 0.0 <= value <= 10.0
        assert 0.0 <= result['score'] <= 100.0

    def test_client_not_ranking_is_ignored_by_serp_subscore(self, app):
        acme = make_client()
        kw = make_keyword(acme)
        now = utcnow()
        db.session.add(DBSERPResult(keyword_id=kw.id, position=None, is_client_content=True,
                                    checked_at=now - timedelta(days=1)))
        db.session.commit()

        result = calculate_reputation_score(acme.id, now - timedelta(days=30), now)
        assert result['breakdown']['serp'] == NEUTRAL_SUBSCORE

    def test_overview_compares_windows(self, app):
        acme = make_client()
        now = utcnow()
        db.session.add(DBNewsMention(acme.id, 'Old praise', 'https://news.example/old',
                                     sentiment=Sentiment.POSITIVE, sentiment_score=1.0,
                                     scraped_at=now - timedelta(days=45)))
        db.session.add(DBNewsMention(acme.id, 'New scandal', 'https://news.example/new',
                                     sentiment=Sentiment.NEGATIVE, sentiment_score=-1.0,
                                     scraped_at=now - timedelta(days=5)))
        db.session.commit()

        overview = get_reputation_overview(acme.id, now=now)

        assert overview['score'] < overview['previous_score']
        assert overview['trend'] == 'down'
        assert overview['change'] == round(overview['score'] - overview['previous_score'], 2)

class TestAnalysisInput:

    def test_collects_positions_and_mentions(self, app):
        acme = make_client()
        climbing = make_keyword(acme, 'empresa xyz')
        make_keyword(acme, 'xyz golpe')
        now = utcnow()
        db.session.add(DBSERPResult(keyword_id=climbing.id, position=7, is_client_content=True,
                                    checked_at=now - timedelta(days=2)))
        db.session.add(DBSERPResult(keyword_id=climbing.id, position=3, is_client_content=True,
                                    checked_at=now - timedelta(days=1)))
        db.session.add(DBNewsMention(acme.id, 'XYZ é multada', 'https://news.example/1',
                                     scraped_at=now - timedelta(days=1)))
        db.session.add(DBNewsMention(acme.id, 'Notícia antiga', 'https://news.example/old',
                                     scraped_at=now - timedelta(days=40)))
        account = DBSocialAccount(acme.id, 'facebook', 'page-1')
        db.session.add(account)
        db.session.add(DBSocialPost(account.id, 'facebook', 'p1', content='x' * 150,
                                    sentiment=Sentiment.POSITIVE, published_at=now - timedelta(days=1)))
        db.session.commit()

        data = get_reputation_analysis_input(acme.id, now=now)

        assert data['period_end'] == now
        assert data['period_start'] == now - timedelta(days=30)
        assert data['serp_positions'] == [
            {'keyword': 'empresa xyz', 'position': 3, 'change': 4},
            {'keyword': 'xyz golpe', 'position': None, 'change': 0},
        ]
        news = [m for m in data['mentions'] if m['type'] == 'news']
        social = [m for m in data['mentions'] if m['type'] == 'social']
        assert [m['title'] for m in news] == ['XYZ é multada']
        assert news[0]['sentiment'] == Sentiment.NEUTRAL
        assert len(social[0]['title']) == 100
        assert social[0]['sentiment'] == Sentiment.POSITIVE



class TestSnapshots:

    def test_record_appends(self, app):
        acme = make_client()
        now = utcnow()
        first = record_reputation_score(acme.id, now - timedelta(days=30), now)
        second = record_reputation_score(acme.id, now - timedelta(days=30), now)

        assert first.id != second.id
        assert DBReputationScore.query.filter_by(client_id=acme.id).count() == 2

    def test_snapshots_reject_updates(self, app):
        acme = make_client()
        now = utcnow()
        score = record_reputation_score(acme.id, now - timedelta(days=30), now)

        score.score = 99.0
        with pytest.raises(ValueError):
            db.session.commit()
        db.session.rollback()

        assert db.session.get(DBReputationScore, score.id).score != 99.0

    def test_latest_score_before(self, app):
        acme = make_client()
        db.session.add(snapshot(acme.id, 60.0, NOW - timedelta(days=2)))
        db.session.add(snapshot(acme.id, 70.0, NOW - timedelta(days=1)))
        db.session.commit()

        assert get_latest_score(acme.id).score == 70.0
        assert get_latest_score(acme.id, before=NOW - timedelta(days=1)).score == 60.0
        assert get_latest_score('client_missing') is None


class TestAnalyzeTrend:

    def test_fewer_than_two_points_is_stable(self):
        result = analyze_trend([snapshot('c', 80.0, NOW - timedelta(days=1))], now=NOW)
        assert result == {'direction': 'stable', 'change': 0, 'period': 30, 'data_points': 1}

    def test_compares_oldest_and_newest_in_window(self):
        scores = [
            snapshot('c', 40.0, NOW - timedelta(days=60)),  # outside the window
            snapshot('c', 70.0, NOW - timedelta(days=20)),
            snapshot('c', 90.0, NOW - timedelta(days=10)),
            snapshot('c', 65.0, NOW - timedelta(days=1)),
        ]
        result = analyze_trend(scores, period_days=30, now=NOW)

        assert result['direction'] == 'down'
        assert result['change'] == -5.0
        assert result['data_points'] == 3

    def test_small_change_is_stable(self):
        scores = [
            snapshot('c', 70.0, NOW - timedelta(days=5)),
            snapshot('c', 71.5, NOW - timedelta(days=1)),
        ]
        assert analyze_trend(scores, now=NOW)['direction'] == 'stable'


class TestReputationRoutes:

    def test_trend_endpoint(self, client, app):
        from conftest import auth_headers

        owner = make_user()
        acme = make_client(owner)
        now = utcnow()
        db.session.add(snapshot(acme.id, 60.0, now - timedelta(days=3)))
        db.session.add(snapshot(acme.id, 66.0, now - timedelta(days=1)))
        db.session.commit()

        response = client.get(f'/api/reputation/trend?client_id={acme.id}&days=7',
                              headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.get_json()
        assert [s['score'] for s in data['scores']] == [60.0, 66.0]
        assert data['trend']['direction'] == 'up'
        assert data['trend']['period'] == 7

    def test_trend_requires_client_id(self, client, app):
        from conftest import auth_headers

        owner = make_user()
        response = client.get('/api/reputation/trend', headers=auth_headers(owner))

        assert response.status_code == 400
        assert response.get_json()['error'] == 'VALIDATION_ERROR'

    def test_client_reputation_endpoint(self, client, app):
        from conftest import auth_headers

        owner = make_user()
        acme = make_client(owner)
        response = client.get(f'/api/clients/{acme.id}/reputation', headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.get_json()
        assert data['score'] == 50.0
        assert data['trend'] == 'stable'
        assert set(data['breakdown']) == {'serp', 'news', 'social', 'trend', 'volume'}

    def test_analyze_endpoint(self, client, app):
        from conftest import auth_headers

        owner = make_user()
        viewer = make_user('viewer@example.com', 'Viewer')
        acme = make_client(owner)
        add_client_member(acme.id, viewer.id, ClientRole.VIEWER)
        db.session.commit()

        analysis = {'overall_assessment': 'Estável', 'trend': 'stable', 'score_change': 0.0,
                    'score_change_percentage': 0.0, 'recommendations': ['Publicar cases']}
        with patch('norm.services.ai_service.AIService.analyze_reputation', return_value=analysis) as analyze:
            response = client.post(f'/api/clients/{acme.id}/reputation/analyze?days=7',
                                   headers=auth_headers(viewer))

        assert response.status_code == 200
        data = response.get_json()
        assert data['current_score'] == 50.0
        assert data['previous_score'] == 50.0
        assert data['analysis'] == analysis

        client_name, analysis_input = analyze.call_args.args
        assert client_name == acme.name
        assert analysis_input['period_end'] - analysis_input['period_start'] == timedelta(days=7)

    def test_analyze_endpoint_upstream_failure(self, client, app):
        from conftest import auth_headers
        from norm.errors import ExternalAPIError

        owner = make_user()
        acme = make_client(owner)
        with patch('norm.services.ai_service.AIService.analyze_reputation',
                   side_effect=ExternalAPIError('OpenAI', 'Invalid reputation analysis JSON')):
            response = client.post(f'/api/clients/{acme.id}/reputation/analyze', headers=auth_headers(owner))

        assert response.status_code == 502
        assert response.get_json()['error'] == 'EXTERNAL_API_ERROR'

    def test_analyze_endpoint_stranger_forbidden(self, client, app):
        from conftest import auth_headers

        acme = make_client(make_user())
        stranger = make_user('stranger@example.com', 'Stranger')
        response = client.post(f'/api/clients/{acme.id}/reputation/analyze', headers=auth_headers(stranger))

        assert response.status_code == 403
