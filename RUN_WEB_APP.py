#!/usr/bin/env python3
"""
One-click launcher for the Aufmarket web interface
"""
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Prompt

from config import Config

console = Console()

APP_DIR = Path(__file__).resolve().parent


def ensure_keys(config: Config) -> bool:
    """Ask for the Gemini key if it is missing; the Fonnte token can wait"""
    if not config.gemini_api_key:
        console.print("[yellow]Gemini API key belum diatur.[/yellow] Buat di https://aistudio.google.com/apikey")
        key = Prompt.ask("Tempel API key di sini", default="").strip()
        if not key:
            console.print("[red]Tanpa API key pencarian tidak bisa dijalankan.[/red]")
            return False
        config.set_api_key('gemini', key)
        config.save_to_file()

    if not config.fonnte_token:
        console.print("[dim]Token Fonnte belum diatur - bisa diisi nanti lewat menu Pengaturan.[/dim]")
    return True


def main():
    console.rule("[bold green]aufmarket.[/bold green] web")
    config = Config(str(APP_DIR / 'config.json'))
    if not ensure_keys(config):
        sys.exit(1)

    console.print("Membuka http://localhost:8000 ... (Ctrl+C untuk berhenti)")
    subprocess.run([sys.executable, str(APP_DIR / 'web_app.py')], cwd=APP_DIR)


if __name__ == "__main__":
    main()
