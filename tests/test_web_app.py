"""
End-to-end tests for the Flask endpoints with fake Gemini and Fonnte backends
"""
import io

import pytest

import web_app
from data_exporter import BYTE_ORDER_MARK
from query_refiner import MERGE_SEPARATOR
from conftest import THREE_ROW_TABLE, FakeGenerateResponse, FakeSession

FOLLOW_UP_TABLE = """| Nama Bisnis | Kontak (Telp/WA) | Alamat Lengkap | Alasan Prospek |
|---|---|---|---|
| Kopi Nako Cimahi | 0812-0000-1111 | Jl. Cihanjuang, Cimahi | Cabang baru |
"""

SEARCH_FORM = {'mode': 'leads', 'product': 'Kopi Robusta', 'location': 'Bandung'}


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(config, session):
    web_app.app.config['TESTING'] = True
    web_app.app.config['AUFMARKET_CONFIG'] = config
    web_app.app.config['FONNTE_SESSION'] = session
    yield web_app.app.test_client()
    web_app.app.config['AUFMARKET_CONFIG'] = None
    web_app.app.config.pop('FONNTE_SESSION', None)
    web_app.search_client = None


@pytest.fixture
def fake_models(make_client, monkeypatch):
    """Install a fake Gemini client; queue responses on the returned models"""
    gemini, models = make_client()
    monkeypatch.setattr(web_app, 'search_client', gemini)
    return models


def test_index(client):
    response = client.get('/')
    assert response.status_code == 200
    assert b'aufmarket.' in response.data
    assert b'Koneksi bermasalah' in response.data
    assert b'window.renderedRows' not in response.data


class TestSearch:

    def test_three_rows_are_actionable(self, client, fake_models):
        fake_models.responses.append(FakeGenerateResponse(THREE_ROW_TABLE))

        response = client.post('/api/search', json=SEARCH_FORM)

        assert response.status_code == 200
        data = response.get_json()
        tables = [b for b in data['blocks'] if b['kind'] == 'table']
        assert len(tables[0]['rows']) == 3
        assert tables[0]['columns'][-1] == 'Action'
        assert data['response']['markdown_text'] == THREE_ROW_TABLE
        assert data['request']['product'] == 'Kopi Robusta'
        assert "Kopi Robusta" in fake_models.calls[0]['contents']

    def test_missing_product_never_calls_model(self, client, fake_models):
        response = client.post('/api/search', json=dict(SEARCH_FORM, product=''))

        assert response.status_code == 400
        assert fake_models.calls == []

    def test_gps_without_location(self, client, fake_models):
        fake_models.responses.append(FakeGenerateResponse(THREE_ROW_TABLE))
        form = dict(SEARCH_FORM, location='', lat=-6.9, lng=107.6)

        response = client.post('/api/search', json=form)

        assert response.status_code == 200
        assert response.get_json()['request']['lat'] == -6.9

    def test_model_failure(self, client, fake_models):
        fake_models.error = RuntimeError("quota exceeded")

        response = client.post('/api/search', json=SEARCH_FORM)

        assert response.status_code == 502
        assert response.get_json()['error'] == "Gagal mengambil data: quota exceeded"

    def test_missing_api_key(self, client):
        response = client.post('/api/search', json=SEARCH_FORM)
        assert response.status_code == 502

    @pytest.mark.parametrize("fields", [{'lat': [1], 'lng': 2}, {'lat': 'utara', 'lng': 107.6}])
    def test_malformed_coordinates(self, client, fake_models, fields):
        response = client.post('/api/search', json=dict(SEARCH_FORM, **fields))

        assert response.status_code == 400
        assert response.get_json()['error'] == "Koordinat GPS tidak valid."
        assert fake_models.calls == []

    def test_non_object_body(self, client, fake_models):
        assert client.post('/api/search', json=['Kopi']).status_code == 400


class TestLoadMore:

    def _current(self):
        return {
            'request': dict(SEARCH_FORM, lat=None, lng=None, exclude_names=[], expand_radius=False),
            'response': {'markdown_text': THREE_ROW_TABLE, 'grounding_sources': []},
        }

    def test_appends_new_rows(self, client, fake_models):
        fake_models.responses.append(FakeGenerateResponse(FOLLOW_UP_TABLE))

        response = client.post('/api/load-more', json=self._current())

        assert response.status_code == 200
        data = response.get_json()
        assert data['response']['markdown_text'] == THREE_ROW_TABLE + MERGE_SEPARATOR + FOLLOW_UP_TABLE
        assert data['request']['expand_radius'] is False
        assert "Kopi Kenangan Dago" in fake_models.calls[0]['contents']
        rows = [r for b in data['blocks'] if b['kind'] == 'table' for r in b['rows']]
        assert len(rows) == 4

    def test_short_answer_keeps_client_data(self, client, fake_models):
        fake_models.responses.append(FakeGenerateResponse("Maaf."))

        response = client.post('/api/load-more', json=self._current())

        assert response.status_code == 502
        assert "Tidak ditemukan data tambahan" in response.get_json()['error']

    def test_requires_previous_result(self, client):
        assert client.post('/api/load-more', json={}).status_code == 400

    @pytest.mark.parametrize("body", [
        {'request': {}, 'response': {'markdown_text': THREE_ROW_TABLE}},
        {'request': ['x'], 'response': {'markdown_text': THREE_ROW_TABLE}},
        ['not', 'an', 'object'],
    ])
    def test_rejects_malformed_previous_result(self, client, fake_models, body):
        assert client.post('/api/load-more', json=body).status_code == 400
        assert fake_models.calls == []

    def test_grounding_sources_are_concatenated(self, client, fake_models):
        fake_models.responses.append(FakeGenerateResponse(FOLLOW_UP_TABLE, [
            {'web': {'uri': 'u1', 'title': 'Satu'}},
            {'web': {'uri': 'u2', 'title': 'Dua'}},
        ]))
        current = self._current()
        current['response']['grounding_sources'] = [{'kind': 'web', 'uri': 'u1', 'title': 'Satu'}]

        data = client.post('/api/load-more', json=current).get_json()

        assert [s['uri'] for s in data['response']['grounding_sources']] == ['u1', 'u1', 'u2']


class TestExport:

    def test_csv(self, client):
        response = client.post('/api/export?format=csv', json={'markdown_text': THREE_ROW_TABLE})

        assert response.status_code == 200
        assert 'aufmarket_export.csv' in response.headers['Content-Disposition']
        text = response.data.decode('utf-8')
        assert text.startswith(BYTE_ORDER_MARK)
        assert len(text.split('\n')) == 4

    def test_excel(self, client):
        response = client.post('/api/export?format=excel', json={'markdown_text': THREE_ROW_TABLE})

        assert response.status_code == 200
        assert 'aufmarket_export.xlsx' in response.headers['Content-Disposition']
        assert response.data[:2] == b'PK'

    def test_no_table(self, client):
        response = client.post('/api/export', json={'markdown_text': '|---|---|'})
        assert response.status_code == 404


class TestMessages:

    def test_draft_for_selected_row(self, client, config):
        response = client.post('/api/message/draft', json={
            'action_ref': '0-0', 'markdown_text': THREE_ROW_TABLE, 'mode': 'leads',
        })

        data = response.get_json()
        assert data['lead']['name'] == '**Kopi Kenangan Dago**'
        assert data['draft']['target_number'] == '6281234567890'
        assert 'Kopi Kenangan Dago' in data['draft']['body']
        assert not config.config_file.exists()

    @pytest.mark.parametrize("body", [
        {},
        {'action_ref': '5-0', 'markdown_text': THREE_ROW_TABLE},
        {'action_ref': '0-0', 'markdown_text': 'tidak ada tabel'},
    ])
    def test_draft_requires_known_row(self, client, body):
        assert client.post('/api/message/draft', json=body).status_code == 400

    def test_test_message(self, client):
        data = client.post('/api/message/test', json={'mode': 'suppliers'}).get_json()
        assert data['lead']['name'] == 'Customer/Supplier Tes'
        assert data['draft']['target_number'] == '6281234567890'

    def test_send_with_attachment(self, client, config, session):
        config.set_api_key('fonnte', 'tok')

        response = client.post('/api/message/send', data={
            'target': '6281234567890',
            'message': 'Halo Kak',
            'file': (io.BytesIO(b'%PDF'), 'katalog produk.pdf'),
        }, content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.get_json()['message'] == 'Pesan Berhasil Terkirim!'
        files = session.calls[0]['files']
        assert files['target'] == (None, '6281234567890')
        assert files['message'] == (None, 'Halo Kak')
        assert files['file'][:2] == ('katalog_produk.pdf', b'%PDF')

    def test_send_without_token(self, client, session):
        response = client.post('/api/message/send', data={'target': '6281234567890', 'message': 'x'})

        assert response.status_code == 400
        assert 'Token API Fonnte' in response.get_json()['error']
        assert session.calls == []

    def test_gateway_rejection(self, client, config, session):
        config.set_api_key('fonnte', 'tok')
        session.payload = {'status': False, 'reason': 'invalid token'}

        response = client.post('/api/message/send', data={'target': '6281234567890', 'message': 'x'})

        assert response.status_code == 502
        assert response.get_json()['message'] == 'Gagal: invalid token'

    @pytest.mark.parametrize("payload", [["bad"], "ok"])
    def test_unrecognized_gateway_reply(self, client, config, session, payload):
        config.set_api_key('fonnte', 'tok')
        session.payload = payload

        response = client.post('/api/message/send', data={'target': '6281234567890', 'message': 'x'})

        assert response.status_code == 502
        assert response.get_json()['success'] is False


def test_config_roundtrip(client):
    client.post('/api/config/save', json={
        'fonnte_token': 'abcdefghijkl', 'sender_name': 'Budi', 'message_template': '',
    })

    data = client.get('/api/config/current?mode=suppliers').get_json()
    assert data['fonnte_token'] == 'abcd...ijkl'
    assert data['sender_name'] == 'Budi'
    assert 'Dropship' in data['message_template']
    assert data['gemini_configured'] is False
