"""
Tests for draft composition and the Fonnte sender
"""
import pytest
import requests

from column_roles import Lead
from config import LEADS_DEFAULT_TEMPLATE, SUPPLIER_DEFAULT_TEMPLATE
from message_composer import (
    BAD_RESPONSE_MESSAGE, FONNTE_SEND_URL, GENERIC_REASON, INVALID_TARGET_MESSAGE, MISSING_TOKEN_MESSAGE,
    NETWORK_FAILURE_MESSAGE, SENT_MESSAGE, Attachment, FonnteSender, MessageDraft,
    MessageValidationError, compose_draft, expand_template, format_display_number,
    normalize_phone,
)
from conftest import FakeSession

LEAD = Lead(
    name="Kopi Kenangan Dago",
    contact="0812-3456-7890",
    location="Jl. Dago No. 10, Bandung",
    reason="Kedai kopi ramai",
)


class TestNormalizePhone:

    def test_local_number_gets_country_code(self):
        assert normalize_phone("081234567890") == "6281234567890"
        assert normalize_phone("0812-3456-7890") == "6281234567890"

    def test_international_number_unchanged(self):
        assert normalize_phone("6281234567890") == "6281234567890"
        assert normalize_phone("+62 812 3456 7890") == "6281234567890"

    def test_no_digits(self):
        assert normalize_phone("-") == ""


def test_display_number():
    assert format_display_number("6281234567890").startswith("+62 ")
    assert format_display_number("12") == "12"


class TestExpandTemplate:

    def test_fills_placeholders(self):
        body = expand_template("{name} di {location}: {reason} ~ {sender}", LEAD, "Budi")
        assert body == "Kopi Kenangan Dago di Jl. Dago No. 10, Bandung: Kedai kopi ramai ~ Budi"

    def test_long_reason_becomes_generic(self):
        lead = Lead(name="A", contact="-", location="-", reason="x" * 80)
        assert expand_template("{reason}", lead) == GENERIC_REASON

    def test_reason_at_limit_is_kept(self):
        lead = Lead(name="A", contact="-", location="-", reason="x" * 50)
        assert expand_template("{reason}", lead) == "x" * 50

    def test_missing_sender_removes_signature(self):
        assert expand_template("Halo {name}\n\n~ {sender}", LEAD) == "Halo Kopi Kenangan Dago\n\n"
        assert expand_template("Dari {sender}.", LEAD) == "Dari ."


class TestComposeDraft:

    def test_draft_for_leads(self, config):
        config.set_setting('sender_name', 'Budi')
        draft = compose_draft(LEAD, config, 'leads')

        assert draft.target_number == "6281234567890"
        assert draft.body.startswith("Halo Kak Kopi Kenangan Dago 👋")
        assert draft.body.endswith("~ Budi")
        assert draft.body == expand_template(LEADS_DEFAULT_TEMPLATE, LEAD, "Budi")
        assert config.message_template == ""
        assert not config.config_file.exists()

    def test_contact_without_digits_is_kept_raw(self, config):
        draft = compose_draft(Lead("Toko", "-", "-", "-"), config, 'suppliers')
        assert draft.target_number == "-"
        assert "Dropship/Reseller" in draft.body

    def test_stored_template_is_not_rewritten(self, config):
        config.set_setting('message_template', SUPPLIER_DEFAULT_TEMPLATE)

        draft = compose_draft(LEAD, config, 'leads')

        assert "Dropship/Reseller" in draft.body
        assert config.message_template == SUPPLIER_DEFAULT_TEMPLATE
        assert not config.config_file.exists()


class TestFonnteSender:

    def test_posts_multipart_once(self):
        session = FakeSession({'status': True})
        result = FonnteSender("tok", session=session).send(MessageDraft("6281234567890", "Halo"))

        assert result.success
        assert result.message == SENT_MESSAGE
        assert len(session.calls) == 1
        call = session.calls[0]
        assert call['url'] == FONNTE_SEND_URL
        assert call['headers'] == {'Authorization': 'tok'}
        assert call['files'] == {'target': (None, '6281234567890'), 'message': (None, 'Halo')}

    def test_attachment_is_sent_as_file(self):
        session = FakeSession()
        draft = MessageDraft("6281234567890", "Halo",
                             Attachment("katalog.pdf", b"%PDF", "application/pdf"))
        FonnteSender("tok", session=session).send(draft)

        assert session.calls[0]['files']['file'] == ("katalog.pdf", b"%PDF", "application/pdf")

    def test_missing_token_makes_no_request(self):
        session = FakeSession()
        with pytest.raises(MessageValidationError) as exc:
            FonnteSender("", session=session).send(MessageDraft("6281234567890", "Halo"))

        assert str(exc.value) == MISSING_TOKEN_MESSAGE
        assert session.calls == []

    def test_short_target_makes_no_request(self):
        session = FakeSession()
        with pytest.raises(MessageValidationError, match=INVALID_TARGET_MESSAGE):
            FonnteSender("tok", session=session).send(MessageDraft("1234", "Halo"))
        assert session.calls == []

    def test_gateway_rejection_reason(self):
        session = FakeSession({'status': False, 'reason': 'device disconnected'})
        result = FonnteSender("tok", session=session).send(MessageDraft("6281234567890", "Halo"))

        assert not result.success
        assert result.message == "Gagal: device disconnected"

    def test_network_error(self):
        session = FakeSession(error=requests.ConnectionError("down"))
        result = FonnteSender("tok", session=session).send(MessageDraft("6281234567890", "Halo"))

        assert not result.success
        assert result.message == NETWORK_FAILURE_MESSAGE

    def test_unreadable_response(self):
        session = FakeSession(json_error=ValueError("not json"))
        result = FonnteSender("tok", session=session).send(MessageDraft("6281234567890", "Halo"))
        assert result.message == NETWORK_FAILURE_MESSAGE

    @pytest.mark.parametrize("payload", [["bad"], "ok", 1])
    def test_non_object_response(self, payload):
        session = FakeSession(payload)
        result = FonnteSender("tok", session=session).send(MessageDraft("6281234567890", "Halo"))

        assert not result.success
        assert result.message == BAD_RESPONSE_MESSAGE

    def test_from_config(self, config):
        config.set_api_key('fonnte', 'abc')
        sender = FonnteSender.from_config(config, session=FakeSession())
        assert sender.token == 'abc'
        assert sender.timeout == 30
