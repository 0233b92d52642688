#!/usr/bin/env python3
"""
Aufmarket CLI - find buyers or suppliers from the terminal
"""
import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from config import Config
from data_exporter import DataExporter, NoExportDataError
from gemini_client import (
    GeminiClient, SearchRequest, SearchResponse, SearchError,
    InvalidSearchRequest, validate_request,
)
from message_composer import FonnteSender, MessageValidationError, compose_draft
from query_refiner import InsufficientResultsError, load_more
from results_renderer import RenderedBlock, render_markdown

logger = logging.getLogger(__name__)

console = Console()


def show_results(blocks: List[RenderedBlock]):
    """Print rendered blocks; table rows are numbered for --draft"""
    row_number = 0
    for block in blocks:
        if block.kind == 'heading':
            console.print(f"\n[bold green]{escape(block.text)}[/bold green]")
        elif block.kind == 'list_item':
            console.print(f"  • {escape(block.text)}")
        elif block.kind == 'paragraph':
            console.print(block.text, markup=False)
        else:
            table = Table(show_lines=True)
            table.add_column("#", style="dim")
            for h in block.header:
                table.add_column(escape(h))
            for row in block.rows:
                row_number += 1
                cells = [escape(c.href or c.text) for c in row.cells]
                table.add_row(str(row_number), *cells)
            console.print(table)


def table_rows(blocks: List[RenderedBlock]):
    return [row for block in blocks for row in block.rows]


def run_search(client: GeminiClient, search_request: SearchRequest,
               more: int = 0) -> Optional[SearchResponse]:
    """Initial search plus `more` rounds of load-more, with a spinner"""
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                  console=console, transient=True) as progress:
        progress.add_task("Sedang mencari data...", total=None)
        try:
            result = client.find_leads(search_request)
        except SearchError as e:
            console.print(f"[red]{e}[/red]")
            return None

    for round_number in range(more):
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      console=console, transient=True) as progress:
            progress.add_task(f"Mencari area sekitar ({round_number + 1}/{more})...", total=None)
            try:
                result = load_more(client, search_request, result)
            except (SearchError, InsufficientResultsError) as e:
                # Keep what we already have
                console.print(f"[yellow]{e}[/yellow]")
                break

    return result


def main():
    parser = argparse.ArgumentParser(description='Find buyers or suppliers with Gemini and Google Maps')
    parser.add_argument('product', nargs='?', help='Product to sell or item to source')
    parser.add_argument('location', nargs='?', default='', help='Target area, e.g. "Bandung"')
    parser.add_argument('-m', '--mode', choices=['leads', 'suppliers'], default='leads')
    parser.add_argument('--lat', type=float, help='Latitude to center the search on')
    parser.add_argument('--lng', type=float, help='Longitude to center the search on')
    parser.add_argument('--more', type=int, default=0, help='Extra load-more rounds')
    parser.add_argument('-c', '--config', default='config.json', help='Configuration file')
    parser.add_argument('-o', '--output', choices=['csv', 'excel', 'both', 'none'], default='csv')
    parser.add_argument('--draft', type=int, help='Compose a WhatsApp draft for result row N')
    parser.add_argument('--send', action='store_true', help='Send the draft through Fonnte')
    parser.add_argument('--setup', action='store_true', help='Create sample configuration file')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler('aufmarket.log')]
    )

    config = Config(args.config)

    if args.setup:
        path = config.create_sample_config()
        console.print(f"[green]Created {path} - copy to {args.config} and add your API keys[/green]")
        console.print(config.display_config())
        return

    if not args.product:
        parser.error('product is required')

    coordinates = (args.lat, args.lng) if args.lat is not None and args.lng is not None else None
    search_request = SearchRequest(
        mode=args.mode,
        product=args.product,
        location=args.location,
        coordinates=coordinates,
    )
    try:
        validate_request(search_request)
    except InvalidSearchRequest as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    if not config.gemini_api_key:
        console.print("[red]Gemini API key belum dikonfigurasi. Set GEMINI_API_KEY atau jalankan --setup.[/red]")
        sys.exit(1)

    client = GeminiClient(
        api_key=config.gemini_api_key,
        model=config.get_setting('model'),
        temperature=config.get_setting('temperature'),
    )

    console.print(Panel(f"[bold]{args.product}[/bold] • {args.location or 'GPS'} • {args.mode}",
                        title="aufmarket."))
    logger.info(f"CLI search: {search_request}")
    result = run_search(client, search_request, more=args.more)
    if result is None:
        sys.exit(1)

    blocks = render_markdown(result.markdown_text)
    show_results(blocks)

    sources = [s for s in result.grounding_sources if s.uri]
    if sources:
        console.print(f"\n[dim]{len(sources)} sumber grounding[/dim]")

    exporter = DataExporter(config.get_setting('output_dir'))
    try:
        if args.output in ('csv', 'both'):
            console.print(f"[green]✓ CSV: {exporter.export_to_csv(result.markdown_text)}[/green]")
        if args.output in ('excel', 'both'):
            console.print(f"[green]✓ Excel: {exporter.export_to_excel(result.markdown_text)}[/green]")
    except NoExportDataError as e:
        console.print(f"[yellow]{e}[/yellow]")

    if args.draft is None:
        return

    rows = table_rows(blocks)
    if not 1 <= args.draft <= len(rows):
        console.print(f"[red]Baris {args.draft} tidak ada (1-{len(rows)}).[/red]")
        sys.exit(2)

    config.template_for_mode(args.mode)
    draft = compose_draft(rows[args.draft - 1].lead, config, args.mode)
    console.print(Panel(draft.body, title=f"WA ke {draft.to_dict()['display_number']}"))

    if args.send:
        try:
            outcome = FonnteSender.from_config(config).send(draft)
        except MessageValidationError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(2)
        color = "green" if outcome.success else "red"
        console.print(f"[{color}]{outcome.message}[/{color}]")


if __name__ == "__main__":
    main()
