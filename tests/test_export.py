"""
nORM - CSV Export Tests
"""
import csv
from datetime import date, datetime
from io import StringIO

from norm.database import db
from norm.models.db_models import DBAlert, AlertSeverity, AlertType
from norm.services.export_service import (
    array_to_csv, clients_to_csv, format_date_for_csv, format_datetime_for_csv
)

from conftest import auth_headers, make_client, make_user


def parse(text):
    return list(csv.reader(StringIO(text)))


class TestArrayToCsv:

    def test_empty_input(self):
        assert array_to_csv([]) == ''

    def test_header_and_rows(self):
        text = array_to_csv([{'a': 1, 'b': 'x'}, {'a': 2, 'b': 'y'}])
        assert text == 'a,b\r\n1,x\r\n2,y\r\n'

    def test_round_trip_with_special_characters(self):
        rows = [
            {'name': 'Silva, Souza & Cia', 'note': 'disse "ótimo"', 'body': 'linha 1\nlinha 2'},
            {'name': 'plain', 'note': 'a\r\nb', 'body': ''},
        ]
        parsed = parse(array_to_csv(rows))

        assert parsed[0] == ['name', 'note', 'body']
        assert parsed[1] == ['Silva, Souza & Cia', 'disse "ótimo"', 'linha 1\nlinha 2']
        assert parsed[2] == ['plain', 'a\r\nb', '']

    def test_quotes_are_doubled(self):
        text = array_to_csv([{'q': 'say "hi"'}])
        assert text.splitlines()[1] == '"say ""hi"""'

    def test_none_and_bool(self):
        parsed = parse(array_to_csv([{'a': None, 'b': True, 'c': False}]))
        assert parsed[1] == ['', 'true', 'false']

    def test_explicit_headers_pick_columns(self):
        parsed = parse(array_to_csv([{'a': 1, 'b': 2, 'c': 3}], headers=['c', 'a']))
        assert parsed == [['c', 'a'], ['3', '1']]


class TestFormatting:

    def test_date(self):
        assert format_date_for_csv(datetime(2024, 3, 5, 14, 30)) == '2024-03-05'
        assert format_date_for_csv(date(2024, 3, 5)) == '2024-03-05'
        assert format_date_for_csv('2024-03-05T14:30:00') == '2024-03-05'
        assert format_date_for_csv('2024-03-05T23:30:00Z') == '2024-03-05'
        assert format_date_for_csv(None) == ''

    def test_datetime(self):
        assert format_datetime_for_csv(datetime(2024, 3, 5, 14, 30)) == '2024-03-05T14:30:00'
        assert format_datetime_for_csv('2024-03-05T14:30:00Z') == '2024-03-05T14:30:00+00:00'
        assert format_datetime_for_csv(None) == ''


class TestClientsCsv:

    def test_keywords_joined(self, app):
        acme = make_client(monitoring_keywords=['Empresa XYZ', 'XYZ, reclamação'])
        parsed = parse(clients_to_csv([acme]))

        header, row = parsed
        assert row[header.index('name')] == 'Empresa XYZ'
        assert row[header.index('is_active')] == 'true'


class TestExportRoutes:

    def test_alerts_csv(self, client, app):
        owner = make_user()
        acme = make_client(owner)
        db.session.add(DBAlert(acme.id, AlertType.NEGATIVE_MENTION, AlertSeverity.HIGH, 'Notícia, "negativa"',
                               message='linha 1\nlinha 2'))
        db.session.commit()

        response = client.get('/api/export/alerts', headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.headers['Content-Type'].startswith('text/csv')
        assert 'charset=utf-8' in response.headers['Content-Type']
        assert response.headers['Content-Disposition'].startswith('attachment; filename="alerts-')

        header, row = parse(response.get_data(as_text=True))
        assert row[header.index('title')] == 'Notícia, "negativa"'
        assert row[header.index('message')] == 'linha 1\nlinha 2'
        assert row[header.index('client_name')] == 'Empresa XYZ'

    def test_clients_csv_only_accessible(self, client, app):
        owner = make_user()
        other = make_user('other@example.com', 'Other')
        make_client(owner, name='Mine')
        make_client(other, name='Theirs')

        response = client.get('/api/export/clients', headers=auth_headers(owner))
        rows = parse(response.get_data(as_text=True))

        assert len(rows) == 2
        assert rows[1][rows[0].index('name')] == 'Mine'

    def test_empty_export(self, client, app):
        owner = make_user()
        response = client.get('/api/export/reputation', headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.get_data(as_text=True) == ''

    def test_requires_auth(self, client, app):
        response = client.get('/api/export/alerts')

        assert response.status_code == 401
        assert response.get_json() == {'error': 'UNAUTHORIZED', 'message': 'Token is missing'}
