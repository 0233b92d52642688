"""
Configuration management for Aufmarket
Handles API keys, sender name and message template with defaults and user overrides
"""
import os
import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

LEADS_DEFAULT_TEMPLATE = (
    'Halo Kak {name} 👋,\n\n'
    'Salam kenal ya. Saya lihat bisnis Kakak di {location} menarik banget.\n\n'
    'Kebetulan saya ada info/produk yang cocok buat Kakak karena {reason}.\n\n'
    'Boleh saya share detailnya sebentar Kak? Makasih sebelumnya 🙏\n\n'
    '~ {sender}'
)

SUPPLIER_DEFAULT_TEMPLATE = (
    'Halo Kak Admin {name} 👋,\n\n'
    'Saya dapat info tokonya di {location}.\n\n'
    'Saya tertarik banget mau ikut jualin produknya (Dropship/Reseller). '
    'Boleh minta info pricelist grosir atau katalognya Kak?\n\n'
    'Rencananya mau saya pasarkan kembali, siap order rutin kalau cocok.\n\n'
    'Makasih banyak Kak 🙏\n\n'
    '~ {sender}'
)


def is_leads_text(text: str) -> bool:
    return 'penawaran menarik' in text or 'bisnis kakak' in text or 'bisnis Kakak' in text


def is_supplier_text(text: str) -> bool:
    return 'Dropship' in text or 'Reseller' in text or 'kulakan' in text


def is_old_style(text: str) -> bool:
    return 'Salam,\n{sender}' in text


def default_template(mode: str) -> str:
    return LEADS_DEFAULT_TEMPLATE if mode == 'leads' else SUPPLIER_DEFAULT_TEMPLATE


class Config:
    """Manages API keys and configuration settings"""

    DEFAULT_KEYS = {
        'gemini': None,
        'fonnte': None,
    }

    DEFAULT_SETTINGS = {
        'model': 'gemini-2.5-flash',
        'temperature': 0.7,
        'timeout': 30,
        'sender_name': '',
        'message_template': '',
        'output_dir': 'output',
    }

    def __init__(self, config_file: str = 'config.json'):
        """Defaults, then environment, then the JSON file"""
        self.config_file = Path(config_file)
        self.api_keys = self.DEFAULT_KEYS.copy()
        self.settings = self.DEFAULT_SETTINGS.copy()

        self._load_from_env()

        # File values win over the environment
        if self.config_file.exists():
            self._load_from_file()

    def _load_from_env(self):
        """Load API keys from environment variables"""
        env_mapping = {
            'API_KEY': 'gemini',
            'GEMINI_API_KEY': 'gemini',
            'FONNTE_TOKEN': 'fonnte',
        }

        for env_var, key_name in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                self.api_keys[key_name] = value

    def _load_from_file(self):
        """Load configuration from JSON file"""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if 'api_keys' in data:
                for key, value in data['api_keys'].items():
                    if value:  # Only update if value is provided
                        self.api_keys[key] = value

            if 'settings' in data:
                self.settings.update(data['settings'])

        except (OSError, ValueError) as e:
            logger.warning(f"Could not load config file {self.config_file}: {e}")

    def save_to_file(self):
        """Save current configuration to file"""
        data = {
            'api_keys': self.api_keys,
            'settings': self.settings
        }

        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def create_sample_config(self, path: str = 'config.sample.json') -> str:
        """Create a sample configuration file"""
        sample_data = {
            'api_keys': {
                'gemini': 'your-gemini-api-key-here',
                'fonnte': 'your-fonnte-token-here',
            },
            'settings': self.DEFAULT_SETTINGS
        }

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(sample_data, f, indent=2, ensure_ascii=False)

        logger.info(f"Created {path} - copy to config.json and add your API keys")
        return path

    def set_api_key(self, service: str, key: str):
        self.api_keys[service] = key

    def get_setting(self, setting: str):
        """Get a specific setting value"""
        return self.settings.get(setting)

    def set_setting(self, setting: str, value):
        self.settings[setting] = value

    @property
    def gemini_api_key(self) -> Optional[str]:
        return self.api_keys.get('gemini')

    @property
    def fonnte_token(self) -> str:
        return self.api_keys.get('fonnte') or ''

    @property
    def sender_name(self) -> str:
        return self.settings.get('sender_name') or ''

    @property
    def message_template(self) -> str:
        return self.settings.get('message_template') or ''

    def template_for_mode(self, mode: str) -> str:
        """
        Return the stored template, replacing (and saving) it first when it
        is missing, written for the other mode, or uses the old signature.
        """
        saved = self.message_template

        if mode == 'leads':
            stale = not saved or is_supplier_text(saved) or is_old_style(saved)
        else:
            stale = (not saved or is_leads_text(saved) or 'Dropship' not in saved
                     or is_old_style(saved))

        if stale:
            default = default_template(mode)
            logger.info(f"Resetting message template to the {mode} default")
            self.set_setting('message_template', default)
            self.save_to_file()
            return default
        return saved

    def masked_keys(self) -> Dict[str, str]:
        """API keys with the middle hidden, for display"""
        masked = {}
        for service, key in self.api_keys.items():
            if key:
                masked[service] = key[:4] + '...' + key[-4:] if len(key) > 8 else '****'
            else:
                masked[service] = ''
        return masked

    def display_config(self) -> str:
        """Describe current configuration (hiding sensitive keys)"""
        lines = ["API Keys:"]
        for service, masked in self.masked_keys().items():
            lines.append(f"  {service}: {masked or 'Not configured'}")
        lines.append("Settings:")
        for setting, value in self.settings.items():
            if setting == 'message_template':
                value = (value[:40] + '...') if len(value) > 40 else value
                value = value.replace('\n', ' ')
            lines.append(f"  {setting}: {value}")
        return "\n".join(lines)
