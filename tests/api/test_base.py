"""Tests for api/base.py - Unified API response format."""

from datetime import timezone

from api.base import (
    success_response,
    error_response,
    ErrorCodes,
)


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_structure(self):
        resp = success_response({"foo": "bar"})
        assert resp.success is True
        assert resp.data == {"foo": "bar"}
        assert resp.error is None
        assert resp.meta.total is None

    def test_total_for_paged_listing(self):
        resp = success_response([{"id": 1}], total=37)
        assert resp.meta.total == 37

    def test_timestamp_is_utc(self):
        resp = success_response({})
        assert resp.meta.timestamp.tzinfo == timezone.utc


class TestErrorResponse:
    """Tests for error_response()."""

    def test_structure(self):
        resp = error_response(ErrorCodes.APPOINTMENT_CONFLICT, "Slot taken")
        assert resp.success is False
        assert resp.data is None
        assert resp.error.code == "APPOINTMENT_CONFLICT"
        assert resp.error.message == "Slot taken"

    def test_request_id_generated(self):
        resp = error_response("ERR", "msg")
        assert resp.meta.request_id
