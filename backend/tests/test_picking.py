"""Tests for the picking checklist and its hand-off to the state machine."""
from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.exceptions import InvalidTransitionError, NotFoundError
from backend.app.models.audit import AuditLog
from backend.app.models.order import Order, OrderStatus
from backend.app.services.orders import request_transition
from backend.app.services.picking import (
    finish_picking,
    get_checklist,
    toggle_checklist_item,
)
from backend.tests.conftest import auth, new_order


class TestToggle:
    def test_toggle_flips_mark(self, db: Session, processing_order: Order) -> None:
        item_id = processing_order.items[0].id

        first = toggle_checklist_item(db, processing_order.id, item_id)
        assert first["checked_count"] == 1
        assert first["items"][0]["is_checked"] is True

        second = toggle_checklist_item(db, processing_order.id, item_id)
        assert second["checked_count"] == 0
        assert second["items"][0]["is_checked"] is False

    def test_item_from_another_order(self, db: Session, processing_order: Order) -> None:
        other = new_order(db)

        with pytest.raises(NotFoundError):
            toggle_checklist_item(db, processing_order.id, other.items[0].id)

    def test_toggle_does_not_complete_picking(
        self, db: Session, processing_order: Order
    ) -> None:
        for item in list(processing_order.items):
            toggle_checklist_item(db, processing_order.id, item.id)

        checklist = get_checklist(db, processing_order.id)
        assert checklist["checked_count"] == checklist["total_items"]
        assert checklist["picking_completed"] is False


class TestFinishPicking:
    def test_all_checked(self, db: Session, processing_order: Order) -> None:
        for item in list(processing_order.items):
            toggle_checklist_item(db, processing_order.id, item.id)

        result = finish_picking(db, processing_order.id)

        assert result["picking_completed"] is True
        assert result["status"] == "PROCESSING"
        assert result["warnings"] == []

    def test_unchecked_items_warn_but_finish(
        self, db: Session, processing_order: Order
    ) -> None:
        toggle_checklist_item(db, processing_order.id, processing_order.items[0].id)

        result = finish_picking(db, processing_order.id)

        assert result["picking_completed"] is True
        assert result["warnings"] == ["1 of 2 items were not checked"]

    def test_pending_order_moves_to_processing(
        self, db: Session, pending_order: Order
    ) -> None:
        result = finish_picking(db, pending_order.id)

        assert result["status"] == "PROCESSING"
        db.refresh(pending_order)
        assert pending_order.status == OrderStatus.PROCESSING

    def test_idempotent(self, db: Session, processing_order: Order) -> None:
        first = finish_picking(db, processing_order.id)
        second = finish_picking(db, processing_order.id)

        assert first["picking_completed"] is True
        assert second["picking_completed"] is True
        assert second["status"] == "PROCESSING"
        # Only the first call changed anything
        assert db.query(AuditLog).filter(AuditLog.action == "PICKING_FINISHED").count() == 1

    def test_does_not_reach_ready_by_itself(
        self, db: Session, processing_order: Order
    ) -> None:
        finish_picking(db, processing_order.id)

        db.refresh(processing_order)
        assert processing_order.status == OrderStatus.PROCESSING
        result = request_transition(db, processing_order.id, OrderStatus.READY)
        assert result["status"] == "READY"

    def test_rejected_past_processing(self, db: Session, ready_order: Order) -> None:
        with pytest.raises(InvalidTransitionError):
            finish_picking(db, ready_order.id)

        db.refresh(ready_order)
        assert ready_order.status == OrderStatus.READY

    def test_unknown_order(self, db: Session) -> None:
        with pytest.raises(NotFoundError):
            finish_picking(db, uuid.uuid4())


# ─── API tests ────────────────────────────────────────────────────────────────


class TestPickingApi:
    def test_checklist_flow(
        self, client: TestClient, picker_token: str, processing_order: Order
    ) -> None:
        base = f"/api/v1/orders/{processing_order.id}"
        checklist = client.get(f"{base}/checklist", headers=auth(picker_token)).json()
        assert checklist["total_items"] == 2

        for item in checklist["items"]:
            resp = client.post(
                f"{base}/checklist/{item['id']}/toggle", headers=auth(picker_token)
            )
            assert resp.status_code == 200

        resp = client.post(f"{base}/finish-picking", headers=auth(picker_token))
        assert resp.status_code == 200
        assert resp.json()["warnings"] == []

        resp = client.post(
            f"{base}/transition", json={"to_status": "READY"}, headers=auth(picker_token)
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "READY"

    def test_cashier_cannot_pick(
        self, client: TestClient, cashier_token: str, processing_order: Order
    ) -> None:
        resp = client.post(
            f"/api/v1/orders/{processing_order.id}/finish-picking",
            headers=auth(cashier_token),
        )
        assert resp.status_code == 403
