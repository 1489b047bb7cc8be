"""Unit tests for ResourceSnapshot parsing and ResourceHandle binding."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from cloud_reconciler.errors import HandleError
from cloud_reconciler.resources.handle import ResourceHandle
from cloud_reconciler.resources.snapshot import ResourceSnapshot


class TestResourceSnapshot:
    def test_camel_case_payload(self):
        snap = ResourceSnapshot.model_validate(
            {
                "id": "db-1",
                "status": "creating",
                "statusMessage": "allocating storage",
                "updatedAt": "2026-01-02T03:04:05Z",
                "engine": "postgres",
            }
        )
        assert snap.identity == "db-1"
        assert snap.status_message == "allocating storage"
        assert snap.updated_at == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert snap.attributes == {"engine": "postgres"}

    def test_nested_status_object_is_flattened(self):
        snap = ResourceSnapshot.model_validate(
            {"id": "vm-1", "status": {"status": "error", "statusMessage": "no capacity"}}
        )
        assert snap.status == "error"
        assert snap.status_message == "no capacity"

    def test_top_level_message_wins_over_nested(self):
        snap = ResourceSnapshot.model_validate(
            {
                "id": "vm-1",
                "statusMessage": "outer",
                "status": {"status": "error", "statusMessage": "inner"},
            }
        )
        assert snap.status_message == "outer"

    def test_missing_status_is_empty(self):
        snap = ResourceSnapshot.model_validate({"id": "x"})
        assert snap.status == ""
        assert snap.status_message is None

    def test_attribute_default(self):
        snap = ResourceSnapshot(identity="x")
        assert snap.attribute("endpointIP") is None
        assert snap.attribute("endpointIP", "") == ""


class TestResourceHandle:
    def test_empty_handle_is_falsy(self):
        handle = ResourceHandle("vpc")
        assert not handle
        with pytest.raises(HandleError, match="no identity"):
            handle.require()

    def test_bind_once(self):
        handle = ResourceHandle("vpc")
        handle.bind("vpc-1")
        handle.bind("vpc-1")
        assert handle.require() == "vpc-1"

    def test_rebind_refused(self):
        handle = ResourceHandle("vpc", "vpc-1")
        with pytest.raises(HandleError, match="refusing to rebind"):
            handle.bind("vpc-2")
        assert handle.identity == "vpc-1"

    def test_bind_empty_refused(self):
        with pytest.raises(HandleError):
            ResourceHandle("vpc").bind("")

    def test_clear_drops_snapshot(self):
        handle = ResourceHandle("vpc", "vpc-1")
        handle.snapshot = ResourceSnapshot(identity="vpc-1", status="ready")
        handle.clear()
        assert not handle
        assert handle.snapshot is None
