"""
Compose and send WhatsApp messages to a selected lead through the Fonnte gateway
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import phonenumbers
import requests

from column_roles import Lead
from config import Config, default_template

logger = logging.getLogger(__name__)

FONNTE_SEND_URL = "https://api.fonnte.com/send"
COUNTRY_PREFIX = "62"
MIN_TARGET_LENGTH = 5
MAX_REASON_LENGTH = 50
GENERIC_REASON = "potensi pasar di area tersebut"

TEST_LEAD = Lead(
    name="Customer/Supplier Tes",
    contact="081234567890",
    location="Lokasi Simulasi",
    reason="Ini adalah simulasi leads untuk mengetes konfigurasi pengiriman pesan Fontee anda.",
)

MISSING_TOKEN_MESSAGE = "Token API Fonnte belum dikonfigurasi. Silakan atur di menu utama."
INVALID_TARGET_MESSAGE = "Nomor target tidak valid."
SENT_MESSAGE = "Pesan Berhasil Terkirim!"
NETWORK_FAILURE_MESSAGE = (
    "Gagal Terkirim. Periksa koneksi internet anda atau pastikan server gateway dapat dijangkau."
)
BAD_RESPONSE_MESSAGE = "Gagal Terkirim. Respon dari server gateway tidak dikenali."


class MessageValidationError(ValueError):
    """Raised before sending when the token or target number is unusable"""


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str = 'application/octet-stream'


@dataclass
class MessageDraft:
    target_number: str
    body: str
    attachment: Optional[Attachment] = None

    def to_dict(self) -> Dict:
        return {
            'target_number': self.target_number,
            'display_number': format_display_number(self.target_number),
            'body': self.body,
        }


@dataclass
class SendResult:
    success: bool
    message: str


def normalize_phone(contact: str) -> str:
    """Keep the digits and swap a leading 0 for the Indonesian country code"""
    digits = re.sub(r'\D', '', contact or '')
    if digits.startswith('0'):
        digits = COUNTRY_PREFIX + digits[1:]
    return digits


def format_display_number(number: str) -> str:
    """Pretty-print a normalized number, e.g. '+62 812-3456-7890'"""
    try:
        parsed = phonenumbers.parse('+' + number, None)
    except phonenumbers.NumberParseException:
        return number
    if not phonenumbers.is_possible_number(parsed):
        return number
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)


def expand_template(template: str, lead: Lead, sender_name: str = '') -> str:
    """Fill {name}, {location}, {reason} and {sender} from the lead and settings"""
    reason = GENERIC_REASON if len(lead.reason) > MAX_REASON_LENGTH else lead.reason
    message = (template
               .replace('{name}', lead.name)
               .replace('{location}', lead.location)
               .replace('{reason}', reason))
    if sender_name:
        return message.replace('{sender}', sender_name)
    return re.sub(r'~ \{sender\}|\{sender\}', '', message)


def compose_draft(lead: Lead, config: Config, mode: str = 'leads') -> MessageDraft:
    """
    Build the editable draft shown when a row is selected.

    The stored template is used as is. Config.template_for_mode reconciles it
    with the mode when the settings are loaded.
    """
    clean_number = normalize_phone(lead.contact)
    template = config.message_template or default_template(mode)
    return MessageDraft(
        target_number=clean_number or lead.contact,
        body=expand_template(template, lead, config.sender_name),
    )


class FonnteSender:
    """Send drafts through the Fonnte WhatsApp gateway"""

    def __init__(self, token: str, session: requests.Session = None,
                 url: str = FONNTE_SEND_URL, timeout: int = 30):
        self.token = token
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Config, session: requests.Session = None) -> 'FonnteSender':
        return cls(config.fonnte_token, session=session,
                   timeout=config.get_setting('timeout') or 30)

    def validate(self, draft: MessageDraft) -> None:
        if not self.token:
            raise MessageValidationError(MISSING_TOKEN_MESSAGE)
        if not draft.target_number or len(draft.target_number) < MIN_TARGET_LENGTH:
            raise MessageValidationError(INVALID_TARGET_MESSAGE)

    def _multipart(self, draft: MessageDraft) -> Dict[str, Tuple]:
        fields = {
            'target': (None, draft.target_number),
            'message': (None, draft.body),
        }
        if draft.attachment:
            fields['file'] = (
                draft.attachment.filename,
                draft.attachment.content,
                draft.attachment.content_type,
            )
        return fields

    def send(self, draft: MessageDraft) -> SendResult:
        """Validate locally, then post the draft once. No retries."""
        self.validate(draft)

        try:
            response = self.session.post(
                self.url,
                headers={'Authorization': self.token},
                files=self._multipart(draft),
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Fonnte request failed: {e}")
            return SendResult(success=False, message=NETWORK_FAILURE_MESSAGE)

        if not isinstance(data, dict):
            logger.error(f"Unexpected Fonnte response: {data!r}")
            return SendResult(success=False, message=BAD_RESPONSE_MESSAGE)

        if data.get('status'):
            logger.info(f"Message sent to {draft.target_number}")
            return SendResult(success=True, message=SENT_MESSAGE)

        reason = data.get('reason') or 'unknown error'
        logger.warning(f"Fonnte rejected message to {draft.target_number}: {reason}")
        return SendResult(success=False, message=f"Gagal: {reason}")
