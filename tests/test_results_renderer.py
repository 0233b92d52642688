"""
Tests for rendering parsed markdown into row-addressable blocks
"""
from column_roles import Lead
from results_renderer import (
    ACTION_COLUMN, MAPS_LINK_LABEL, render_markdown, render_cell, sanitize_url, find_row,
    blocks_to_dicts,
)
from conftest import THREE_ROW_TABLE


class TestRenderMarkdown:

    def test_three_row_table_gives_three_actionable_rows(self):
        blocks = render_markdown(THREE_ROW_TABLE)
        tables = [b for b in blocks if b.kind == 'table']

        assert len(tables) == 1
        assert len(tables[0].rows) == 3
        assert tables[0].columns[-1] == ACTION_COLUMN
        assert [r.action_ref for r in tables[0].rows] == ["0-0", "0-1", "0-2"]

    def test_rows_carry_leads(self):
        table = [b for b in render_markdown(THREE_ROW_TABLE) if b.kind == 'table'][0]
        assert table.rows[1].lead == Lead(
            name="Hotel Savoy Homann",
            contact="022-4232244",
            location="Jl. Asia Afrika No. 112",
            reason="Butuh kopi untuk sarapan",
        )

    def test_action_refs_unique_across_tables(self):
        text = "| Nama | Kontak |\n|---|---|\n| A | 1 |\n\n| Nama | Kontak |\n|---|---|\n| B | 2 |"
        blocks = render_markdown(text)
        assert find_row(blocks, "1-0").lead.name == "B"
        assert find_row(blocks, "9-9") is None

    def test_non_table_blocks_pass_through(self):
        blocks = render_markdown("## Judul\n- **poin**")
        assert [(b.kind, b.text) for b in blocks] == [('heading', 'Judul'), ('list_item', 'poin')]

    def test_dicts_are_json_ready(self):
        data = blocks_to_dicts(render_markdown(THREE_ROW_TABLE))
        table = [b for b in data if b['kind'] == 'table'][0]
        assert table['columns'][-1] == ACTION_COLUMN
        assert table['rows'][0]['lead']['name'] == "**Kopi Kenangan Dago**"
        assert table['rows'][0]['cells'][0] == {'text': "**Kopi Kenangan Dago**", 'href': None, 'label': None}


class TestRenderCell:

    def test_markdown_link_in_maps_column(self):
        cell = render_cell("Link Maps", "[Lihat](https://maps.google.com/?q=Toko+A)")
        assert cell.href == "https://maps.google.com/?q=TokoA"
        assert cell.label == MAPS_LINK_LABEL

    def test_raw_url_in_maps_column(self):
        cell = render_cell("Koordinat", "https://goo.gl/maps/abc")
        assert cell.href == "https://goo.gl/maps/abc"

    def test_url_outside_link_column_is_plain_text(self):
        cell = render_cell("Alamat", "https://maps.google.com")
        assert cell.href is None
        assert cell.text == "https://maps.google.com"

    def test_non_http_after_sanitizing_falls_back_to_text(self):
        cell = render_cell("Maps", "www.example.com")
        assert cell.href is None
        assert cell.text == "www.example.com"

    def test_plain_text_in_link_column(self):
        assert render_cell("Link", "tidak ada").href is None


def test_sanitize_url_drops_unsafe_characters():
    assert sanitize_url('https://a.com/x?y=1&z=<b>"') == "https://a.com/x?y=1&z=b"
