#!/usr/bin/env python3
"""
Aufmarket Web Application - find buyers or suppliers and contact them on WhatsApp
"""
import io
import logging

from flask import Flask, render_template_string, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

from config import Config
from data_exporter import DataExporter, NoExportDataError, EXPORT_PREFIX
from gemini_client import (
    GeminiClient, SearchRequest, SearchResponse, SearchError,
    InvalidSearchRequest, validate_request,
)
from message_composer import (
    Attachment, FonnteSender, MessageDraft, MessageValidationError,
    TEST_LEAD, compose_draft,
)
from query_refiner import InsufficientResultsError, load_more
from results_renderer import render_markdown, blocks_to_dicts, find_row

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max

# Global state
search_client = None


def get_config() -> Config:
    """Configuration object for this app (set AUFMARKET_CONFIG to inject one)"""
    if app.config.get('AUFMARKET_CONFIG') is None:
        app.config['AUFMARKET_CONFIG'] = Config()
    return app.config['AUFMARKET_CONFIG']


def get_search_client() -> GeminiClient:
    """Get or create the Gemini client"""
    global search_client
    if search_client is None:
        config = get_config()
        if not config.gemini_api_key:
            raise SearchError("Gagal mengambil data: Gemini API key belum dikonfigurasi")
        search_client = GeminiClient(
            api_key=config.gemini_api_key,
            model=config.get_setting('model'),
            temperature=config.get_setting('temperature'),
        )
    return search_client


def json_body() -> dict:
    """The request's JSON object, or an empty dict for anything else"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _result_payload(search_request: SearchRequest, result: SearchResponse) -> dict:
    return {
        'request': search_request.to_dict(),
        'response': result.to_dict(),
        'blocks': blocks_to_dicts(render_markdown(result.markdown_text)),
    }


HTML_TEMPLATE = '''
<!DOCTYPE html>
<html lang="id">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>aufmarket.</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css">
    <style>
        .gradient-bg { background: linear-gradient(135deg, #047857 0%, #10b981 100%); }
        .mode-btn.active { background: white; color: #047857; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
        #message-panel { transition: transform 0.3s ease; }
    </style>
</head>
<body class="bg-slate-50 text-slate-800">
    <nav class="gradient-bg text-white shadow-lg">
        <div class="max-w-7xl mx-auto px-4 flex justify-between h-16 items-center">
            <span class="text-xl font-bold"><i class="fas fa-store mr-2"></i>aufmarket.</span>
            <div class="flex items-center space-x-3">
                <button onclick="testMessage()" class="px-4 py-2 rounded hover:bg-white hover:bg-opacity-20">
                    <i class="fab fa-whatsapp mr-2"></i>Tes Pesan
                </button>
                <button onclick="toggleSettings()" class="px-4 py-2 rounded hover:bg-white hover:bg-opacity-20">
                    <i class="fas fa-cog mr-2"></i>Pengaturan
                </button>
            </div>
        </div>
    </nav>

    <main class="max-w-6xl mx-auto p-6">
        <!-- Settings -->
        <div id="settings" class="hidden bg-white rounded-xl shadow p-6 mb-6">
            <h2 class="font-bold text-lg mb-4">Konfigurasi Fonnte</h2>
            <label class="block text-sm font-bold mb-1">Token API Fonnte</label>
            <input id="cfg-token" type="password" class="w-full border rounded p-2 mb-3" placeholder="Token">
            <label class="block text-sm font-bold mb-1">Nama Pengirim</label>
            <input id="cfg-sender" type="text" class="w-full border rounded p-2 mb-3" placeholder="Nama anda">
            <label class="block text-sm font-bold mb-1">Template Pesan ({name}, {location}, {reason}, {sender})</label>
            <textarea id="cfg-template" rows="8" class="w-full border rounded p-2 mb-3"></textarea>
            <button onclick="saveSettings()" class="px-5 py-2 bg-emerald-600 text-white rounded font-bold">Simpan</button>
        </div>

        <!-- Search form -->
        <div id="search-view" class="bg-white rounded-2xl shadow-xl p-8">
            <div class="flex justify-center mb-8">
                <div class="bg-slate-100 p-1.5 rounded-full inline-flex">
                    <button id="mode-leads" onclick="setMode('leads')" class="mode-btn active px-8 py-2 text-sm font-bold rounded-full">Jual Produk (Leads)</button>
                    <button id="mode-suppliers" onclick="setMode('suppliers')" class="mode-btn px-8 py-2 text-sm font-bold rounded-full">Cari Supplier</button>
                </div>
            </div>
            <form id="search-form" onsubmit="submitSearch(event)">
                <label id="product-label" class="block text-sm font-bold mb-1">Produk yang anda jual</label>
                <input id="product" type="text" class="w-full border rounded-xl p-3 mb-4" placeholder="contoh: Kopi Robusta">
                <label class="block text-sm font-bold mb-1">Lokasi target</label>
                <div class="flex gap-2 mb-6">
                    <input id="location" type="text" class="flex-1 border rounded-xl p-3" placeholder="contoh: Bandung">
                    <button type="button" onclick="useGps()" class="px-4 border rounded-xl"><i class="fas fa-location-crosshairs"></i></button>
                </div>
                <button id="search-btn" type="submit" class="w-full py-3 bg-emerald-600 text-white rounded-xl font-bold">Cari Sekarang</button>
            </form>
        </div>

        <!-- Loading / error -->
        <div id="status" class="hidden text-center py-12"></div>

        <!-- Results -->
        <div id="results-view" class="hidden">
            <div class="flex justify-between mb-6">
                <button onclick="resetSearch()" class="px-5 py-2 bg-white border rounded-xl font-bold text-sm">
                    <i class="fas fa-arrow-left mr-2"></i>Kembali Cari
                </button>
                <div class="space-x-2">
                    <button onclick="exportData('csv')" class="px-5 py-2 bg-emerald-600 text-white rounded-xl font-bold text-sm">
                        <i class="fas fa-file-csv mr-2"></i>Export CSV
                    </button>
                    <button onclick="exportData('excel')" class="px-5 py-2 bg-emerald-700 text-white rounded-xl font-bold text-sm">
                        <i class="fas fa-file-excel mr-2"></i>Export Excel
                    </button>
                </div>
            </div>
            <div id="results" class="bg-white rounded-2xl shadow p-6"></div>
            <div id="sources" class="mt-4 text-xs text-slate-500"></div>
            <div id="load-more-error" class="hidden mt-4 p-3 bg-red-50 text-red-700 rounded"></div>
            <button id="load-more-btn" onclick="loadMore()" class="mt-6 w-full py-3 bg-white border rounded-xl font-bold">
                <i class="fas fa-plus mr-2"></i>Cari Lebih Banyak (Area Sekitar)
            </button>
        </div>
    </main>

    <!-- Message panel -->
    <div id="message-panel" class="hidden fixed top-0 right-0 h-full w-full lg:w-[420px] bg-white shadow-2xl p-6 overflow-y-auto">
        <div class="flex justify-between items-center mb-6">
            <h2 class="font-bold text-lg">Kirim Pesan WA</h2>
            <button onclick="closePanel()"><i class="fas fa-times"></i></button>
        </div>
        <div id="panel-lead" class="mb-4 text-sm"></div>
        <label class="block text-sm font-bold mb-1">Nomor Tujuan</label>
        <input id="panel-target" type="text" class="w-full border rounded p-2 mb-1">
        <div id="panel-display-number" class="text-xs text-slate-400 mb-3"></div>
        <label class="block text-sm font-bold mb-1">Pesan</label>
        <textarea id="panel-message" rows="10" class="w-full border rounded p-2 mb-3" placeholder="Tulis pesan anda..."></textarea>
        <label class="block text-sm font-bold mb-1">Gambar (opsional)</label>
        <input id="panel-file" type="file" accept="image/*" class="mb-4">
        <button id="send-btn" onclick="sendMessage()" class="w-full py-3 bg-green-600 text-white rounded-xl font-bold">
            <i class="fab fa-whatsapp mr-2"></i>Kirim Pesan
        </button>
    </div>

    <script>
        // idle -> loading -> success | error; load more re-enters loading with data kept
        let state = 'idle';
        let mode = 'leads';
        let coords = null;
        let lastRequest = null;
        let data = null;
        let selectedLead = null;
        const CONNECTION_ERROR = 'Koneksi bermasalah. Periksa internet anda lalu coba lagi.';

        // Throws only when the request itself fails; non-JSON bodies become an error result
        async function postJson(url, body) {
            const response = await fetch(url, {
                method: 'POST',
                headers: {'Content-Type': 'application/json'},
                body: JSON.stringify(body)
            });
            let result;
            try {
                result = await response.json();
            } catch (e) {
                result = {error: CONNECTION_ERROR};
            }
            return {ok: response.ok, result: result};
        }

        function setMode(newMode) {
            mode = newMode;
            document.getElementById('mode-leads').classList.toggle('active', mode === 'leads');
            document.getElementById('mode-suppliers').classList.toggle('active', mode === 'suppliers');
            document.getElementById('product-label').textContent =
                mode === 'leads' ? 'Produk yang anda jual' : 'Barang yang ingin anda kulakan';
            loadSettings();
        }

        async function loadSettings() {
            let cfg;
            try {
                const response = await fetch(`/api/config/current?mode=${mode}`);
                cfg = await response.json();
            } catch (e) {
                return;
            }
            document.getElementById('cfg-token').placeholder = cfg.fonnte_token || 'Token';
            document.getElementById('cfg-sender').value = cfg.sender_name;
            document.getElementById('cfg-template').value = cfg.message_template;
        }

        function toggleSettings() {
            document.getElementById('settings').classList.toggle('hidden');
        }

        async function saveSettings() {
            const payload = {
                sender_name: document.getElementById('cfg-sender').value,
                message_template: document.getElementById('cfg-template').value
            };
            const token = document.getElementById('cfg-token').value;
            if (token) payload.fonnte_token = token;
            try {
                const reply = await postJson('/api/config/save', payload);
                if (!reply.ok) { alert(reply.result.error || CONNECTION_ERROR); return; }
            } catch (e) {
                alert(CONNECTION_ERROR);
                return;
            }
            alert('Konfigurasi Tersimpan!');
            toggleSettings();
        }

        function useGps() {
            if (!('geolocation' in navigator)) { alert('Geolocation tidak didukung browser ini.'); return; }
            navigator.geolocation.getCurrentPosition(
                (pos) => {
                    coords = {lat: pos.coords.latitude, lng: pos.coords.longitude};
                    document.getElementById('location').value = 'Lokasi Saat Ini (GPS Aktif)';
                },
                () => alert('Gagal mendeteksi lokasi. Pastikan GPS aktif.')
            );
        }

        function setState(newState, message) {
            state = newState;
            const status = document.getElementById('status');
            document.getElementById('search-btn').disabled = state === 'loading';
            document.getElementById('load-more-btn').disabled = state === 'loading';
            if (state === 'loading' && !data) {
                document.getElementById('search-view').classList.add('hidden');
                status.innerHTML = '<i class="fas fa-spinner fa-spin text-3xl text-emerald-600"></i><p class="mt-4">Sedang mencari data...</p>';
                status.classList.remove('hidden');
            } else if (state === 'error' && !data) {
                status.innerHTML = `<p class="text-red-700 mb-4">${escapeHtml(message)}</p>` +
                    '<button onclick="resetSearch()" class="px-5 py-2 bg-emerald-600 text-white rounded-xl font-bold">Coba Lagi</button>';
                status.classList.remove('hidden');
            } else {
                status.classList.add('hidden');
            }
            const loadMoreError = document.getElementById('load-more-error');
            if (state === 'error' && data) {
                loadMoreError.textContent = message;
                loadMoreError.classList.remove('hidden');
            } else {
                loadMoreError.classList.add('hidden');
            }
            document.getElementById('load-more-btn').innerHTML = state === 'loading' && data
                ? '<i class="fas fa-spinner fa-spin mr-2"></i>Memuat...'
                : '<i class="fas fa-plus mr-2"></i>Cari Lebih Banyak (Area Sekitar)';
        }

        async function submitSearch(event) {
            event.preventDefault();
            const product = document.getElementById('product').value.trim();
            const location = document.getElementById('location').value.trim();
            if (!product) return;
            if (!location && !coords) return;

            const payload = {
                mode: mode,
                product: product,
                location: coords ? 'lokasi saya saat ini' : location,
                lat: coords ? coords.lat : null,
                lng: coords ? coords.lng : null
            };
            data = null;
            selectedLead = null;
            closePanel();
            setState('loading');
            let reply;
            try {
                reply = await postJson('/api/search', payload);
            } catch (e) {
                setState('error', CONNECTION_ERROR);
                return;
            }
            if (!reply.ok) { setState('error', reply.result.error || 'Terjadi kesalahan saat mencari data.'); return; }
            lastRequest = reply.result.request;
            showResults(reply.result);
            setState('success');
        }

        async function loadMore() {
            if (!lastRequest || !data || state === 'loading') return;
            setState('loading');
            let reply;
            try {
                reply = await postJson('/api/load-more', {request: lastRequest, response: data});
            } catch (e) {
                setState('error', CONNECTION_ERROR);
                return;
            }
            if (!reply.ok) { setState('error', reply.result.error || 'Gagal memuat lebih banyak data.'); return; }
            showResults(reply.result);
            setState('success');
        }

        function showResults(result) {
            data = result.response;
            document.getElementById('search-view').classList.add('hidden');
            document.getElementById('results-view').classList.remove('hidden');
            document.getElementById('results').innerHTML = renderBlocks(result.blocks);
            const sources = data.grounding_sources.filter(s => s.uri);
            document.getElementById('sources').innerHTML = sources.length
                ? 'Sumber: ' + sources.map(s => `<a href="${escapeHtml(s.uri)}" target="_blank" rel="noopener" class="underline mr-2">${escapeHtml(s.title || s.uri)}</a>`).join('')
                : '';
        }

        function renderBlocks(blocks) {
            return blocks.map(block => {
                if (block.kind === 'heading') return `<h3 class="text-xl font-bold mt-8 mb-4 border-l-4 border-emerald-500 pl-4">${escapeHtml(block.text)}</h3>`;
                if (block.kind === 'list_item') return `<li class="ml-5 mb-2 text-sm">${escapeHtml(block.text)}</li>`;
                if (block.kind === 'paragraph') return `<p class="mb-4 text-sm">${escapeHtml(block.text)}</p>`;
                const head = block.columns.map(h => `<th class="px-4 py-3 text-left text-xs font-bold uppercase">${escapeHtml(h)}</th>`).join('');
                const body = block.rows.map(row => {
                    const cells = row.cells.map((cell, ci) => {
                        const content = cell.href
                            ? `<a href="${escapeHtml(cell.href)}" target="_blank" rel="noopener" class="text-blue-600 font-bold underline">${escapeHtml(cell.label)}</a>`
                            : escapeHtml(cell.text);
                        return `<td class="px-4 py-3 text-sm ${ci === 0 ? 'font-bold' : ''}">${content}</td>`;
                    }).join('');
                    return `<tr class="border-t">${cells}<td class="px-4 py-3 text-right">` +
                        `<button onclick="selectLead('${row.action_ref}')" class="px-3 py-2 rounded bg-green-50 text-green-700 font-bold text-xs">` +
                        '<i class="fab fa-whatsapp mr-1"></i>Chat WA</button></td></tr>';
                }).join('');
                return `<div class="overflow-x-auto my-6"><table class="min-w-full"><thead><tr>${head}</tr></thead><tbody>${body}</tbody></table></div>`;
            }).join('');
        }

        async function selectLead(actionRef) {
            openPanel('/api/message/draft', {action_ref: actionRef, markdown_text: data.markdown_text, mode: mode});
        }

        async function testMessage() {
            openPanel('/api/message/test', {mode: mode});
        }

        async function openPanel(url, body) {
            let reply;
            try {
                reply = await postJson(url, body);
            } catch (e) {
                alert(CONNECTION_ERROR);
                return;
            }
            if (!reply.ok) { alert(reply.result.error || CONNECTION_ERROR); return; }
            const result = reply.result;
            selectedLead = result.lead;
            document.getElementById('panel-lead').innerHTML =
                `<b>${escapeHtml(selectedLead.name)}</b><br>${escapeHtml(selectedLead.location)}`;
            document.getElementById('panel-target').value = result.draft.target_number;
            document.getElementById('panel-display-number').textContent = result.draft.display_number;
            document.getElementById('panel-message').value = result.draft.body;
            document.getElementById('panel-file').value = '';
            document.getElementById('message-panel').classList.remove('hidden');
        }

        function closePanel() {
            selectedLead = null;
            document.getElementById('message-panel').classList.add('hidden');
        }

        async function sendMessage() {
            const form = new FormData();
            form.append('target', document.getElementById('panel-target').value);
            form.append('message', document.getElementById('panel-message').value);
            const file = document.getElementById('panel-file').files[0];
            if (file) form.append('file', file, file.name);
            const button = document.getElementById('send-btn');
            button.disabled = true;
            try {
                const response = await fetch('/api/message/send', {method: 'POST', body: form});
                let result;
                try {
                    result = await response.json();
                } catch (e) {
                    result = {error: CONNECTION_ERROR};
                }
                alert(result.message || result.error);
            } catch (e) {
                alert(CONNECTION_ERROR);
            } finally {
                button.disabled = false;
            }
        }

        async function exportData(format) {
            if (!data) return;
            let blob;
            try {
                const response = await fetch(`/api/export?format=${format}`, {
                    method: 'POST',
                    headers: {'Content-Type': 'application/json'},
                    body: JSON.stringify({markdown_text: data.markdown_text})
                });
                if (!response.ok) {
                    const result = await response.json().catch(() => ({error: CONNECTION_ERROR}));
                    alert(result.error);
                    return;
                }
                blob = await response.blob();
            } catch (e) {
                alert(CONNECTION_ERROR);
                return;
            }
            const link = document.createElement('a');
            link.href = URL.createObjectURL(blob);
            link.download = format === 'excel' ? 'aufmarket_export.xlsx' : 'aufmarket_export.csv';
            document.body.appendChild(link);
            link.click();
            document.body.removeChild(link);
        }

        function resetSearch() {
            data = null;
            lastRequest = null;
            closePanel();
            setState('idle');
            document.getElementById('results-view').classList.add('hidden');
            document.getElementById('search-view').classList.remove('hidden');
        }

        function escapeHtml(text) {
            const div = document.createElement('div');
            div.textContent = text == null ? '' : String(text);
            return div.innerHTML;
        }

        loadSettings();
    </script>
</body>
</html>
'''


@app.route('/')
def index():
    """Serve the main web interface"""
    return render_template_string(HTML_TEMPLATE)


@app.route('/api/config/current')
def get_current_config():
    """Get current config (token masked) and the template for the given mode"""
    config = get_config()
    mode = request.args.get('mode', 'leads')
    return jsonify({
        'fonnte_token': config.masked_keys().get('fonnte', ''),
        'gemini_configured': bool(config.gemini_api_key),
        'sender_name': config.sender_name,
        'message_template': config.template_for_mode(mode),
    })


@app.route('/api/config/save', methods=['POST'])
def save_config():
    """Save gateway token, sender name and message template"""
    global search_client

    data = json_body()
    config = get_config()

    if 'fonnte_token' in data:
        config.set_api_key('fonnte', data['fonnte_token'])
    if data.get('gemini_key'):
        config.set_api_key('gemini', data['gemini_key'])
        search_client = None
    if 'sender_name' in data:
        config.set_setting('sender_name', data['sender_name'])
    if 'message_template' in data:
        config.set_setting('message_template', data['message_template'])

    config.save_to_file()
    return jsonify({'success': True})


@app.route('/api/search', methods=['POST'])
def search():
    """Run a new search"""
    data = json_body()
    try:
        search_request = SearchRequest.from_dict(data)
        validate_request(search_request)
    except (InvalidSearchRequest, ValueError) as e:
        return jsonify({'error': str(e)}), 400

    try:
        result = get_search_client().find_leads(search_request)
    except SearchError as e:
        return jsonify({'error': str(e)}), 502

    return jsonify(_result_payload(search_request, result))


@app.route('/api/load-more', methods=['POST'])
def load_more_results():
    """Fetch more results around the last search and append them"""
    data = json_body()
    previous = [data.get('request'), data.get('response')]
    if not all(part and isinstance(part, dict) for part in previous):
        return jsonify({'error': 'Belum ada hasil pencarian.'}), 400

    try:
        last_request = SearchRequest.from_dict(data['request'])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    current = SearchResponse.from_dict(data['response'])

    try:
        merged = load_more(get_search_client(), last_request, current)
    except (SearchError, InsufficientResultsError) as e:
        return jsonify({'error': str(e)}), 502

    return jsonify(_result_payload(last_request, merged))


@app.route('/api/export', methods=['POST'])
def export_results():
    """Export the tables in the current result as CSV or Excel"""
    data = json_body()
    markdown_text = str(data.get('markdown_text') or '')
    format = request.args.get('format', 'csv')
    exporter = DataExporter(get_config().get_setting('output_dir'))

    try:
        if format == 'excel':
            content = exporter.build_excel(markdown_text)
            return send_file(
                io.BytesIO(content),
                mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
                as_attachment=True,
                download_name=f'{EXPORT_PREFIX}.xlsx',
            )
        content = exporter.build_csv(markdown_text)
    except NoExportDataError as e:
        return jsonify({'error': str(e)}), 404

    return content.encode('utf-8'), 200, {
        'Content-Type': 'text/csv; charset=utf-8',
        'Content-Disposition': f'attachment; filename={EXPORT_PREFIX}.csv'
    }


@app.route('/api/message/draft', methods=['POST'])
def message_draft():
    """Build the message draft for the row behind an action reference"""
    data = json_body()
    row = find_row(render_markdown(str(data.get('markdown_text') or '')), data.get('action_ref'))
    if row is None:
        return jsonify({'error': 'Tidak ada target yang dipilih.'}), 400

    draft = compose_draft(row.lead, get_config(), data.get('mode', 'leads'))
    return jsonify({'lead': row.lead.to_dict(), 'draft': draft.to_dict()})


@app.route('/api/message/test', methods=['POST'])
def message_test():
    """Draft a message to a simulated lead so the gateway setup can be tried"""
    data = json_body()
    draft = compose_draft(TEST_LEAD, get_config(), data.get('mode', 'leads'))
    return jsonify({'lead': TEST_LEAD.to_dict(), 'draft': draft.to_dict()})


@app.route('/api/message/send', methods=['POST'])
def message_send():
    """Send the (possibly edited) draft through the gateway"""
    draft = MessageDraft(
        target_number=request.form.get('target', '').strip(),
        body=request.form.get('message', ''),
    )
    upload = request.files.get('file')
    if upload and upload.filename:
        draft.attachment = Attachment(
            filename=secure_filename(upload.filename),
            content=upload.read(),
            content_type=upload.mimetype or 'application/octet-stream',
        )

    sender = FonnteSender.from_config(get_config(), session=app.config.get('FONNTE_SESSION'))
    try:
        result = sender.send(draft)
    except MessageValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    return jsonify({'success': result.success, 'message': result.message}), (200 if result.success else 502)


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('aufmarket.log'),
            logging.StreamHandler()
        ]
    )

    print("\n🚀 Starting Aufmarket Web App")
    print("📋 Open your browser to: http://localhost:8000")
    print("Press Ctrl+C to stop\n")

    # Auto-open browser
    import webbrowser
    webbrowser.open('http://localhost:8000')

    app.run(debug=True, port=8000)
