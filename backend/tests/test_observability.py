"""
Tests for observability and outbound helpers

Tests cover:
- Health endpoint responses
- Structured log emission for business events
- E-mail delivery through Resend (mocked)
- PDF formatting helpers
"""
import json
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.main import app
from app.services.email import EmailService, public_document_url
from app.services.logging import LogEntityType, StructuredLogger
from app.services.pdf import format_amount, format_date_fr


class TestHealthEndpoint:

    @pytest.mark.asyncio
    async def test_health_reports_database(self, test_engine, monkeypatch):
        monkeypatch.setattr("app.main.engine", test_engine)
        monkeypatch.setattr(settings, "REDIS_URL", None)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")

        assert response.status_code == 200
        health = response.json()
        assert health["status"] == "healthy"
        assert health["components"]["database"] == {"status": "healthy", "message": "Connected"}
        assert health["components"]["redis"]["status"] == "disabled"


class TestStructuredLogger:

    def _entries(self, caplog) -> list:
        return [json.loads(r.getMessage()) for r in caplog.records if r.name == "crm_test"]

    def test_invoice_paid_entry(self, caplog):
        caplog.set_level(logging.INFO, logger="crm_test")
        log = StructuredLogger("crm_test")
        invoice_id, tenant_id, tx_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

        log.invoice_paid(invoice_id, tenant_id, Decimal("60.00"), bank_transaction_id=tx_id)

        [entry] = self._entries(caplog)
        assert entry["event"] == "invoice.paid"
        assert entry["severity"] == "INFO"
        assert entry["entity_type"] == "invoice"
        assert entry["entity_id"] == str(invoice_id)
        assert entry["tenant_id"] == str(tenant_id)
        assert entry["amount"] == "60.00"
        assert entry["bank_transaction_id"] == str(tx_id)

    def test_over_allocation_is_a_warning(self, caplog):
        caplog.set_level(logging.INFO, logger="crm_test")
        log = StructuredLogger("crm_test")

        log.reconciliation_allocated(
            bank_transaction_id=uuid.uuid4(),
            tenant_id=uuid.uuid4(),
            invoice_id=uuid.uuid4(),
            amount=Decimal("70.00"),
            reconciled_amount=Decimal("130.00"),
            is_reconciled=True,
            over_allocated=True,
        )

        record = [r for r in caplog.records if r.name == "crm_test"][0]
        assert record.levelno == logging.WARNING
        entry = json.loads(record.getMessage())
        assert entry["severity"] == "WARN"
        assert entry["message"] == "Allocation exceeds transaction amount"

    def test_public_view_entry(self, caplog):
        caplog.set_level(logging.INFO, logger="crm_test")
        log = StructuredLogger("crm_test")

        log.public_viewed(LogEntityType.QUOTE, uuid.uuid4(), uuid.uuid4(), view_count=3)

        [entry] = self._entries(caplog)
        assert entry["event"] == "public.viewed"
        assert entry["view_count"] == 3
        assert "message" not in entry


class TestEmailService:

    def test_public_document_url(self, monkeypatch):
        monkeypatch.setattr(settings, "FRONTEND_URL", "https://crm.example.com/")

        assert public_document_url("quote", "abc") == "https://crm.example.com/public/quote/abc"

    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_API_KEY", None)
        service = EmailService()

        sent = await service.send_document_link(
            to_email="claire@boulangerie-martin.fr",
            kind="invoice",
            number="FAC-2026-0001",
            token="abc",
            company_name="Atelier Dupont SARL",
        )

        assert sent is False

    @pytest.mark.asyncio
    async def test_sends_through_resend(self, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(settings, "FRONTEND_URL", "https://crm.example.com")
        service = EmailService()
        service._client = MagicMock()

        sent = await service.send_document_link(
            to_email="claire@boulangerie-martin.fr",
            kind="quote",
            number="DEV-2026-0007",
            token="abc",
            company_name="Atelier Dupont SARL",
            contact_name="Claire",
        )

        assert sent is True
        payload = service._client.Emails.send.call_args.args[0]
        assert payload["to"] == ["claire@boulangerie-martin.fr"]
        assert payload["subject"] == "Quote DEV-2026-0007 from Atelier Dupont SARL"
        assert "https://crm.example.com/public/quote/abc" in payload["text"]
        assert "Hello Claire," in payload["text"]

    @pytest.mark.asyncio
    async def test_provider_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
        service = EmailService()
        service._client = MagicMock()
        service._client.Emails.send.side_effect = RuntimeError("provider down")

        sent = await service.send_quote_response_notification(
            to_email="owner@example.com",
            quote_number="DEV-2026-0007",
            client_name="Boulangerie Martin",
            accepted=True,
        )

        assert sent is False


class TestPdfFormatting:

    @pytest.mark.parametrize("value,expected", [
        (Decimal("12345.6"), "12 345,60 €"),
        (Decimal("0"), "0,00 €"),
        (None, "0,00 €"),
        (Decimal("1234567.891"), "1 234 567,89 €"),
    ])
    def test_format_amount(self, value, expected):
        assert format_amount(value) == expected

    def test_format_date_fr(self):
        assert format_date_fr(date(2026, 3, 1)) == "01/03/2026"
        assert format_date_fr(datetime(2026, 12, 31, 18, 0)) == "31/12/2026"
        assert format_date_fr(None) == "-"
