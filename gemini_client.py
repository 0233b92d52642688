"""
Gemini client for finding buyers (leads) and suppliers with Search and Maps grounding
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

MODES = ('leads', 'suppliers')
MAX_EXCLUDES = 40
EMPTY_RESULT_TEXT = "Maaf, tidak ditemukan data yang sesuai saat ini."


class InvalidSearchRequest(ValueError):
    """Raised before any network call when required fields are missing"""


class SearchError(Exception):
    """Raised when the model call fails"""


@dataclass(frozen=True)
class SearchRequest:
    """One submission of the search form"""
    mode: str
    product: str
    location: str
    coordinates: Optional[Tuple[float, float]] = None  # (latitude, longitude)
    exclude_names: Tuple[str, ...] = ()
    expand_radius: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'product': self.product,
            'location': self.location,
            'lat': self.coordinates[0] if self.coordinates else None,
            'lng': self.coordinates[1] if self.coordinates else None,
            'exclude_names': list(self.exclude_names),
            'expand_radius': self.expand_radius,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchRequest':
        lat, lng = data.get('lat'), data.get('lng')
        coordinates = None
        if lat is not None and lng is not None and lat != '' and lng != '':
            try:
                coordinates = (float(lat), float(lng))
            except (TypeError, ValueError):
                raise InvalidSearchRequest("Koordinat GPS tidak valid.")

        exclude_names = data.get('exclude_names') or ()
        if not isinstance(exclude_names, (list, tuple)):
            raise InvalidSearchRequest("Daftar pengecualian tidak valid.")
        return cls(
            mode=data.get('mode') or 'leads',
            product=str(data.get('product') or ''),
            location=str(data.get('location') or ''),
            coordinates=coordinates,
            exclude_names=tuple(str(name) for name in exclude_names),
            expand_radius=bool(data.get('expand_radius', False)),
        )


@dataclass(frozen=True)
class GroundingSource:
    """A web page or map place the model cited. Passed through untouched."""
    kind: str
    uri: str = ""
    title: str = ""
    place_id: str = ""
    review_snippets: Tuple[str, ...] = ()

    @classmethod
    def from_chunk(cls, chunk: Dict[str, Any]) -> 'GroundingSource':
        if chunk.get('maps'):
            maps = chunk['maps']
            answer_sources = maps.get('place_answer_sources') or {}
            snippets = tuple(
                s.get('review') or s.get('content') or ''
                for s in answer_sources.get('review_snippets') or []
            )
            return cls(
                kind='maps',
                uri=maps.get('uri') or '',
                title=maps.get('title') or '',
                place_id=maps.get('place_id') or '',
                review_snippets=tuple(s for s in snippets if s),
            )
        web = chunk.get('web') or {}
        return cls(kind='web', uri=web.get('uri') or '', title=web.get('title') or '')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'uri': self.uri,
            'title': self.title,
            'place_id': self.place_id,
            'review_snippets': list(self.review_snippets),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GroundingSource':
        return cls(
            kind=data.get('kind') or 'web',
            uri=data.get('uri') or '',
            title=data.get('title') or '',
            place_id=data.get('place_id') or '',
            review_snippets=tuple(data.get('review_snippets') or ()),
        )


@dataclass(frozen=True)
class SearchResponse:
    markdown_text: str
    grounding_sources: Tuple[GroundingSource, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'markdown_text': self.markdown_text,
            'grounding_sources': [s.to_dict() for s in self.grounding_sources],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchResponse':
        return cls(
            markdown_text=str(data.get('markdown_text') or ''),
            grounding_sources=tuple(
                GroundingSource.from_dict(s) for s in data.get('grounding_sources') or []
                if isinstance(s, dict)
            ),
        )


def validate_request(request: SearchRequest) -> None:
    """Reject incomplete requests before they reach the model"""
    if request.mode not in MODES:
        raise InvalidSearchRequest(f"Mode pencarian tidak dikenal: {request.mode}")
    if not request.product.strip():
        raise InvalidSearchRequest("Produk wajib diisi.")
    if not request.location.strip() and request.coordinates is None:
        raise InvalidSearchRequest("Lokasi wajib diisi atau aktifkan GPS.")


class GeminiClient:
    """Client for the Gemini generate-content call"""

    def __init__(self, api_key: str = None, model: str = "gemini-2.5-flash",
                 temperature: float = 0.7, client: Any = None):
        """Initialize Gemini client; pass `client` to reuse an existing genai.Client"""
        self.client = client or genai.Client(api_key=api_key)
        self.model = model
        self.temperature = temperature

    def build_prompts(self, request: SearchRequest) -> Tuple[str, str]:
        """Return (system_instruction, prompt) for the request's mode"""
        is_expansion = request.expand_radius

        clean_excludes = [n for n in request.exclude_names if n and len(n) > 2][:MAX_EXCLUDES]
        exclude_context = ""
        if clean_excludes:
            exclude_context = (
                "\n\nCATATAN PENTING - FILTER DUPLIKASI:\n"
                f"JANGAN sertakan bisnis berikut karena sudah ada di hasil sebelumnya: {', '.join(clean_excludes)}.\n"
                "Carilah nama bisnis LAIN yang belum disebutkan."
            )

        # Any fix counts as GPS, including latitude or longitude 0
        if request.coordinates is not None:
            lat, lng = request.coordinates
            location_prompt = f"di sekitar koordinat lat: {lat}, long: {lng}"
            if is_expansion:
                location_prompt += " (Silakan cari radius yang lebih luas hingga ke kecamatan/kota sebelah)"
        else:
            location_prompt = f'di area "{request.location}"'
            if is_expansion:
                location_prompt += " (Silakan cari radius yang lebih luas hingga ke area sekitarnya)"

        if request.mode == 'leads':
            system_instruction = (
                "Anda adalah asisten riset pasar 'Aufmarket'. Tugas anda adalah mencari target market (leads) "
                "potensial untuk pengguna yang menjual produk tertentu.\n"
                "Fokus pada bisnis/toko/instansi yang valid dan ada di Google Maps. Gunakan tool googleMaps "
                "dan googleSearch untuk memverifikasi keberadaan bisnis tersebut."
            )
            scope = "Perluas pencarian radius jika di titik pusat sudah habis." if is_expansion else "Fokus di area tersebut."
            prompt = f"""Saya menjual produk: "{request.product}".
Tolong carikan daftar prospek/calon pembeli potensial (bisnis/toko/instansi) yang berlokasi {location_prompt}.

Kriteria pencarian:
1. Target harus relevan dan mungkin membutuhkan produk tersebut.
2. Berikan alasan spesifik kenapa mereka butuh.
3. {scope}
{exclude_context}

Format output WAJIB berupa Tabel Markdown dengan kolom:
| Nama Bisnis | Kontak (Telp/WA) | Alamat Lengkap | Alasan Prospek |

Pastikan menyertakan minimal 5-10 hasil yang valid dan benar-benar ada di Maps."""
        else:
            system_instruction = (
                "Anda adalah asisten riset pasar 'Aufmarket'. Tugas anda adalah mencari Supplier/Grosir/Distributor "
                "tangan pertama untuk pengguna yang ingin kulakan barang.\n"
                "Fokus pada supplier yang valid, tangan pertama, atau distributor resmi di Google Maps. "
                "Gunakan tool googleMaps dan googleSearch untuk memverifikasi."
            )
            scope = "Cari hingga ke kota sebelah jika tidak ada di lokasi spesifik." if is_expansion else "Fokus di area tersebut."
            prompt = f"""Saya ingin mencari barang/kulakan: "{request.product}".
Tolong carikan daftar Supplier/Grosir/Distributor/Pabrik yang berlokasi {location_prompt}.

Kriteria pencarian:
1. Prioritaskan tangan pertama, distributor resmi, atau grosir besar.
2. Hindari pengecer kecil jika memungkinkan.
3. {scope}
{exclude_context}

Format output WAJIB berupa Tabel Markdown dengan kolom:
| Nama Supplier | Kontak (Telp/WA) | Alamat Lengkap | Kategori/Catatan |

Pastikan menyertakan minimal 5-10 hasil yang valid dan benar-benar ada di Maps."""

        return system_instruction, prompt

    def build_config(self, request: SearchRequest, system_instruction: str) -> types.GenerateContentConfig:
        """Enable Search and Maps grounding together, centered on the GPS fix if any"""
        tools = [types.Tool(google_search=types.GoogleSearch(), google_maps=types.GoogleMaps())]

        tool_config = None
        if request.coordinates is not None:
            lat, lng = request.coordinates
            tool_config = types.ToolConfig(
                retrieval_config=types.RetrievalConfig(
                    lat_lng=types.LatLng(latitude=lat, longitude=lng)
                )
            )

        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            tools=tools,
            tool_config=tool_config,
            temperature=self.temperature,
        )

    def find_leads(self, request: SearchRequest) -> SearchResponse:
        """Run one search and return the markdown answer with its citations"""
        system_instruction, prompt = self.build_prompts(request)
        config = self.build_config(request, system_instruction)

        logger.info(
            f"Searching {request.mode} for '{request.product}' "
            f"(expand={request.expand_radius}, excludes={len(request.exclude_names)})"
        )

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
            text = response.text or EMPTY_RESULT_TEXT
            sources = self._extract_sources(response)
        except Exception as e:
            logger.error(f"Gemini API Error: {e}")
            raise SearchError(f"Gagal mengambil data: {str(e) or 'Koneksi bermasalah'}") from e

        logger.info(f"Received {len(text)} characters and {len(sources)} grounding sources")
        return SearchResponse(markdown_text=text, grounding_sources=tuple(sources))

    def _extract_sources(self, response: Any) -> List[GroundingSource]:
        candidates = getattr(response, 'candidates', None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], 'grounding_metadata', None)
        chunks = getattr(metadata, 'grounding_chunks', None) or []

        sources = []
        for chunk in chunks:
            data = chunk.model_dump(exclude_none=True) if hasattr(chunk, 'model_dump') else dict(chunk)
            sources.append(GroundingSource.from_chunk(data))
        return sources
