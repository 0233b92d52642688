"""
Shared fixtures: a fake Gemini client, a fake HTTP session and a temp config
"""
import pytest

from config import Config
from gemini_client import GeminiClient


THREE_ROW_TABLE = """Berikut daftar prospek untuk Kopi Robusta di Bandung:

| Nama Bisnis | Kontak (Telp/WA) | Alamat Lengkap | Alasan Prospek |
|---|---|---|---|
| **Kopi Kenangan Dago** | 0812-3456-7890 | Jl. Dago No. 10, Bandung | Kedai kopi ramai |
| Hotel Savoy Homann | 022-4232244 | Jl. Asia Afrika No. 112 | Butuh kopi untuk sarapan |
| Warung "Kopi" Aroma | 08111222333 | Jl. Banceuy No. 51 | Roastery lokal |

- **Catatan**: data diverifikasi lewat Maps
"""


class FakeChunk:
    def __init__(self, data):
        self.data = data

    def model_dump(self, exclude_none=True):
        return self.data


class FakeMetadata:
    def __init__(self, chunks):
        self.grounding_chunks = chunks


class FakeCandidate:
    def __init__(self, chunks):
        self.grounding_metadata = FakeMetadata(chunks)


class FakeGenerateResponse:
    def __init__(self, text, chunks=None):
        self.text = text
        self.candidates = [FakeCandidate([FakeChunk(c) for c in chunks or []])]


class FakeModels:
    """Stands in for genai.Client().models"""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({'model': model, 'contents': contents, 'config': config})
        if self.error:
            raise self.error
        return self.responses.pop(0)


class FakeGenAIClient:
    def __init__(self, responses=None, error=None):
        self.models = FakeModels(responses, error)


class FakeHTTPResponse:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error

    def json(self):
        if self.error:
            raise self.error
        return self.payload


class FakeSession:
    """Records posts instead of hitting the gateway"""

    def __init__(self, payload=None, error=None, json_error=None):
        self.payload = payload if payload is not None else {'status': True}
        self.error = error
        self.json_error = json_error
        self.calls = []

    def post(self, url, headers=None, files=None, timeout=None):
        self.calls.append({'url': url, 'headers': headers, 'files': files, 'timeout': timeout})
        if self.error:
            raise self.error
        return FakeHTTPResponse(self.payload, self.json_error)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ('API_KEY', 'GEMINI_API_KEY', 'FONNTE_TOKEN'):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config(tmp_path):
    return Config(str(tmp_path / 'config.json'))


@pytest.fixture
def make_client():
    def _make(responses=None, error=None):
        fake = FakeGenAIClient(responses, error)
        return GeminiClient(client=fake), fake.models
    return _make
