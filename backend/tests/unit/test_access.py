"""Unit tests for check_tenancy_access and audit sinks"""

import json
import logging

import pytest

from tenantguard.audit.service import AuditSink, LoggingAuditSink, MemoryAuditSink, TenancyAuditRecord
from tenantguard.observability import JSONFormatter, request_id_var
from tenantguard.tenancy import TenancyError, TenancyViolation, check_tenancy_access


pytestmark = pytest.mark.unit


class FailingSink(AuditSink):
    def __init__(self):
        self.calls = 0

    def record(self, entry: TenancyAuditRecord) -> None:
        self.calls += 1
        raise RuntimeError("audit store unavailable")


class TestCheckTenancyAccess:

    def test_same_tenant_passes(self):
        sink = MemoryAuditSink()
        check_tenancy_access("tenant-a", "tenant-a", sink)
        assert sink.records == []

    def test_mismatch_raises_and_audits(self):
        sink = MemoryAuditSink()

        with pytest.raises(TenancyViolation) as exc_info:
            check_tenancy_access("tenant-a", "tenant-b", sink, entity_type="Invoice")

        assert isinstance(exc_info.value, TenancyError)
        assert "Invoice" in str(exc_info.value)
        assert len(sink.records) == 1
        assert sink.records[0].to_dict()["expected_tenant"] == "tenant-a"
        assert sink.records[0].to_dict()["actual_tenant"] == "tenant-b"
        assert sink.records[0].entity_type == "Invoice"

    def test_record_carries_request_id(self):
        sink = MemoryAuditSink()
        token = request_id_var.set("req-123")
        try:
            with pytest.raises(TenancyViolation):
                check_tenancy_access(1, 2, sink)
        finally:
            request_id_var.reset(token)

        assert sink.records[0].request_id == "req-123"

    def test_none_and_unset_value_are_equal(self):
        check_tenancy_access(None, 0, unset_value=0)
        check_tenancy_access(0, None, unset_value=0)

    def test_unset_caller_cannot_access_owned_data(self):
        with pytest.raises(TenancyViolation):
            check_tenancy_access(None, "tenant-a", MemoryAuditSink())

    def test_owned_caller_cannot_access_unowned_data(self):
        with pytest.raises(TenancyViolation):
            check_tenancy_access("tenant-a", None, MemoryAuditSink())

    def test_failing_sink_does_not_mask_violation(self, caplog):
        sink = FailingSink()

        with caplog.at_level(logging.ERROR, logger="tenantguard.tenancy.access"):
            with pytest.raises(TenancyViolation):
                check_tenancy_access("tenant-a", "tenant-b", sink)

        assert sink.calls == 1
        assert "Audit sink failed" in caplog.text

    def test_default_sink_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tenantguard.audit"):
            with pytest.raises(TenancyViolation):
                check_tenancy_access("tenant-a", "tenant-b", entity_type="Invoice")

        record = next(r for r in caplog.records if r.name == "tenantguard.audit")
        assert record.levelno == logging.WARNING
        assert record.entity_type == "Invoice"
        assert record.expected_tenant == "tenant-a"
        assert record.actual_tenant == "tenant-b"


class TestLoggingAuditSink:

    def test_json_payload_shape(self, caplog):
        sink = LoggingAuditSink()

        with caplog.at_level(logging.WARNING, logger="tenantguard.audit"):
            sink.record(TenancyAuditRecord("Invoice", "tenant-a", "tenant-b"))

        payload = json.loads(JSONFormatter().format(caplog.records[-1]))
        assert payload["level"] == "WARNING"
        assert payload["entity_type"] == "Invoice"
        assert payload["expected_tenant"] == "tenant-a"
        assert payload["actual_tenant"] == "tenant-b"
        assert payload["message"] == "Tenancy access violation"
