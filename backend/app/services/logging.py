"""
Structured Logging Service

Provides CRM-aware structured logging for key business events:
- Invoice marked paid / bank transaction allocation
- Prospect converted to active client
- Quote responded to (accepted / rejected) or expired on response
- Public quote / invoice link viewed

Each log entry includes:
- tenant_id
- entity_type (invoice, bank_transaction, client, quote)
- entity_id
- severity (INFO/WARN/ERROR)
"""
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Any
from uuid import UUID
from enum import Enum


class LogSeverity(str, Enum):
    """Log severity levels."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogEntityType(str, Enum):
    """Entity types for structured logging."""
    INVOICE = "invoice"
    BANK_TRANSACTION = "bank_transaction"
    CLIENT = "client"
    QUOTE = "quote"
    PROJECT = "project"


class StructuredLogger:
    """
    Structured logging service for CRM events.

    Logs are emitted as one JSON object per line.
    """

    def __init__(self, logger_name: str = "crm"):
        self.logger = logging.getLogger(logger_name)
        self._ensure_handler()

    def _ensure_handler(self):
        """Ensure logger has a proper handler configured."""
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def _serialize(self, value: Any) -> Any:
        """Serialize UUID and Decimal values to strings."""
        if isinstance(value, (UUID, Decimal)):
            return str(value)
        return value

    def _create_log_entry(
        self,
        event: str,
        severity: LogSeverity,
        entity_type: LogEntityType,
        entity_id: Optional[UUID] = None,
        tenant_id: Optional[UUID] = None,
        message: Optional[str] = None,
        **extra
    ) -> dict:
        """Create a structured log entry."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "severity": severity.value,
            "entity_type": entity_type.value,
        }

        if entity_id:
            entry["entity_id"] = str(entity_id)
        if tenant_id:
            entry["tenant_id"] = str(tenant_id)
        if message:
            entry["message"] = message

        for key, value in extra.items():
            entry[key] = self._serialize(value)

        return entry

    def _log(self, entry: dict, severity: LogSeverity):
        """Emit the log entry at the appropriate level."""
        log_str = json.dumps(entry)
        if severity == LogSeverity.ERROR:
            self.logger.error(log_str)
        elif severity == LogSeverity.WARN:
            self.logger.warning(log_str)
        else:
            self.logger.info(log_str)

    # Reconciliation events
    def invoice_paid(
        self,
        invoice_id: UUID,
        tenant_id: UUID,
        amount: Decimal,
        bank_transaction_id: Optional[UUID] = None,
    ):
        entry = self._create_log_entry(
            event="invoice.paid",
            severity=LogSeverity.INFO,
            entity_type=LogEntityType.INVOICE,
            entity_id=invoice_id,
            tenant_id=tenant_id,
            message="Invoice marked as paid",
            amount=amount,
            bank_transaction_id=bank_transaction_id,
        )
        self._log(entry, LogSeverity.INFO)

    def reconciliation_allocated(
        self,
        bank_transaction_id: UUID,
        tenant_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        reconciled_amount: Decimal,
        is_reconciled: bool,
        over_allocated: bool,
    ):
        """Log an allocation; over-allocations are logged as warnings."""
        severity = LogSeverity.WARN if over_allocated else LogSeverity.INFO
        entry = self._create_log_entry(
            event="reconciliation.allocated",
            severity=severity,
            entity_type=LogEntityType.BANK_TRANSACTION,
            entity_id=bank_transaction_id,
            tenant_id=tenant_id,
            message=(
                "Allocation exceeds transaction amount"
                if over_allocated else "Invoice allocated to bank transaction"
            ),
            invoice_id=invoice_id,
            amount=amount,
            reconciled_amount=reconciled_amount,
            is_reconciled=is_reconciled,
        )
        self._log(entry, severity)

    def reconciliation_conflict(self, bank_transaction_id: UUID, tenant_id: UUID, invoice_id: UUID):
        entry = self._create_log_entry(
            event="reconciliation.conflict",
            severity=LogSeverity.WARN,
            entity_type=LogEntityType.BANK_TRANSACTION,
            entity_id=bank_transaction_id,
            tenant_id=tenant_id,
            message="Concurrent reconciliation detected, allocation rejected",
            invoice_id=invoice_id,
        )
        self._log(entry, LogSeverity.WARN)

    # Client events
    def prospect_converted(self, client_id: UUID, tenant_id: UUID, reason: str):
        entry = self._create_log_entry(
            event="prospect.converted",
            severity=LogSeverity.INFO,
            entity_type=LogEntityType.CLIENT,
            entity_id=client_id,
            tenant_id=tenant_id,
            message="Client converted from prospect to active",
            reason=reason,
        )
        self._log(entry, LogSeverity.INFO)

    # Quote events
    def quote_responded(self, quote_id: UUID, tenant_id: UUID, accepted: bool):
        entry = self._create_log_entry(
            event="quote.responded",
            severity=LogSeverity.INFO,
            entity_type=LogEntityType.QUOTE,
            entity_id=quote_id,
            tenant_id=tenant_id,
            message="Quote accepted by client" if accepted else "Quote rejected by client",
            accepted=accepted,
        )
        self._log(entry, LogSeverity.INFO)

    def quote_expired(self, quote_id: UUID, tenant_id: UUID):
        entry = self._create_log_entry(
            event="quote.expired",
            severity=LogSeverity.INFO,
            entity_type=LogEntityType.QUOTE,
            entity_id=quote_id,
            tenant_id=tenant_id,
            message="Response received after validity date, quote expired",
        )
        self._log(entry, LogSeverity.INFO)

    # Public access events
    def public_viewed(self, entity_type: LogEntityType, entity_id: UUID, tenant_id: UUID, view_count: int):
        entry = self._create_log_entry(
            event="public.viewed",
            severity=LogSeverity.INFO,
            entity_type=entity_type,
            entity_id=entity_id,
            tenant_id=tenant_id,
            view_count=view_count,
        )
        self._log(entry, LogSeverity.INFO)


# Global logger instance
crm_logger = StructuredLogger()
