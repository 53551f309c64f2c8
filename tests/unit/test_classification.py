"""
Tests for remote error classification.
"""

import pytest

from schemamend.classification import (
    ChannelOutcome,
    ProbeFailure,
    classify_channel_result,
    classify_probe_error,
    payload_error,
)
from schemamend.exceptions import DatabaseConnectionError, RemoteCallError


class TestClassifyProbeError:

    @pytest.mark.parametrize("code", ["42703", "PGRST204"])
    def test_column_missing_codes(self, code):
        assert classify_probe_error(RemoteCallError("x", code=code)) == ProbeFailure.COLUMN_MISSING

    @pytest.mark.parametrize("code", ["42P01", "PGRST205"])
    def test_table_missing_codes(self, code):
        assert classify_probe_error(RemoteCallError("x", code=code)) == ProbeFailure.TABLE_MISSING

    def test_column_message_wins_over_relation(self):
        error = RemoteCallError('column "tax_amount" of relation "orders" does not exist')
        assert classify_probe_error(error) == ProbeFailure.COLUMN_MISSING

    def test_table_message(self):
        error = RemoteCallError('relation "public.shipments" does not exist')
        assert classify_probe_error(error) == ProbeFailure.TABLE_MISSING

    def test_schema_cache_message(self):
        error = RemoteCallError("Could not find the 'tax_amount' column of 'orders' in the schema cache")
        assert classify_probe_error(error) == ProbeFailure.COLUMN_MISSING

    def test_other_errors(self):
        error = RemoteCallError("permission denied for table orders", code="42501", status=403)
        assert classify_probe_error(error) == ProbeFailure.OTHER


class TestPayloadError:

    def test_success_payloads(self):
        assert payload_error(None) is None
        assert payload_error({"success": True}) is None
        assert payload_error([{"?column?": 1}]) is None
        assert payload_error("ALTER TABLE") is None

    def test_failure_dict(self):
        assert payload_error({"success": False, "error": "boom"}) == "boom"
        assert payload_error({"error": "denied"}) == "denied"
        assert payload_error({"success": False}) == "function reported failure"

    def test_single_row_result(self):
        assert payload_error([{"success": False, "error": "boom"}]) == "boom"

    def test_error_string(self):
        assert payload_error("ERROR: permission denied") == "ERROR: permission denied"


class TestClassifyChannelResult:

    def test_success(self):
        assert classify_channel_result(None, {"success": True}).outcome == ChannelOutcome.OK

    def test_missing_entry_point(self):
        error = RemoteCallError("Could not find the function public.exec_sql(sql)", code="PGRST202")
        assert classify_channel_result(error, function="exec_sql").outcome == ChannelOutcome.CHANNEL_MISSING

    def test_undefined_function_naming_the_channel(self):
        error = RemoteCallError("function exec_sql(text) does not exist", code="42883")
        assert classify_channel_result(error, function="exec_sql").outcome == ChannelOutcome.CHANNEL_MISSING

    def test_undefined_function_inside_statement(self):
        error = RemoteCallError("function gen_random_uuid() does not exist", code="42883")
        verdict = classify_channel_result(error, function="exec_sql")
        assert verdict.outcome == ChannelOutcome.REJECTED

    @pytest.mark.parametrize("code", ["42701", "42P07", "42710"])
    def test_already_exists_codes(self, code):
        error = RemoteCallError("duplicate", code=code)
        assert classify_channel_result(error).outcome == ChannelOutcome.ALREADY_EXISTS

    def test_already_exists_text(self):
        error = RemoteCallError('column "status" of relation "quotations" already exists')
        assert classify_channel_result(error).outcome == ChannelOutcome.ALREADY_EXISTS

    def test_already_exists_in_payload(self):
        data = {"success": False, "error": 'column "status" already exists'}
        assert classify_channel_result(None, data).outcome == ChannelOutcome.ALREADY_EXISTS

    def test_rejected_payload(self):
        verdict = classify_channel_result(None, {"error": "permission denied for schema public"})
        assert verdict.outcome == ChannelOutcome.REJECTED
        assert "permission denied" in verdict.reason

    def test_connectivity_loss_is_rejection(self):
        verdict = classify_channel_result(DatabaseConnectionError("Could not reach host"))
        assert verdict.outcome == ChannelOutcome.REJECTED

    def test_other_error_is_rejection(self):
        error = RemoteCallError("must be owner of table orders", code="42501")
        assert classify_channel_result(error).outcome == ChannelOutcome.REJECTED
