"""
购买 API 测试
"""

import time

import pytest
from fastapi.testclient import TestClient

from presale.api import dependencies
from presale.api.app import app
from presale.common.enums import SwapStatus
from presale.core.orchestrator import PurchaseOrchestrator
from presale.storage.references import TicketReferenceStore
from tests.mocks.services import (
    TOKENS_PER_PROOF,
    MockProofService,
    MockSwapBridge,
    make_launch,
    make_settings,
)

SESSION_BODY = {
    "quantity": 2,
    "payment": {
        "asset_id": "nep141:zec.omft.near",
        "symbol": "ZEC",
        "decimals": 8,
        "price_usd": "2.50",
        "blockchain": "zec",
    },
    "refund_to": "t1Refund",
    "user_pubkey": "UserPubkey111",
}


@pytest.fixture
def bridge():
    return MockSwapBridge()


@pytest.fixture
def tee():
    return MockProofService()


@pytest.fixture
def client(bridge, tee, tmp_path):
    """测试客户端（注入 mock 服务）"""
    orchestrator = PurchaseOrchestrator(
        bridge,
        tee,
        make_launch(),
        make_settings(),
        TicketReferenceStore(tmp_path),
    )
    dependencies.init_services(orchestrator)
    with TestClient(app) as test_client:
        yield test_client
    dependencies.init_services(None)


def _wait_for_session(client: TestClient, predicate, timeout: float = 2.0) -> dict:
    """轮询当前会话直到条件成立"""
    deadline = time.monotonic() + timeout
    while True:
        data = client.get("/purchase/sessions/current").json()["data"]
        if predicate(data):
            return data
        if time.monotonic() > deadline:
            raise AssertionError(f"会话状态超时: {data}")
        time.sleep(0.01)


class TestHealth:
    """健康检查测试"""
    
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["configured"] is True
    
    def test_not_configured(self):
        dependencies.init_services(None)
        response = TestClient(app).get("/purchase/availability")
        
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "NOT_CONFIGURED"


class TestSessionApi:
    """会话 API 测试"""
    
    def test_availability(self, client):
        response = client.get("/purchase/availability")
        
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["tokens_available"] == 10 * TOKENS_PER_PROOF
    
    def test_start_session(self, client):
        response = client.post("/purchase/sessions", json=SESSION_BODY)
        
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 2
        assert data["completed_count"] == 0
        assert data["selected_index"] == 0
        assert [t["deposit_address"] for t in data["tickets"]] == ["deposit-0", "deposit-1"]
        assert all(t["deposit_amount"] == "2.00000000" for t in data["tickets"])
        assert all(t["state"] == "confirming" for t in data["tickets"])
    
    def test_supply_conflict(self, client, tee, bridge):
        tee.set_tokens_available(1 * TOKENS_PER_PROOF)
        
        response = client.post("/purchase/sessions", json=SESSION_BODY)
        
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "AVAILABILITY_CONFLICT"
        assert error["details"]["remaining_supply"] == 1
        assert bridge.quote_calls == 0
    
    def test_quote_failure(self, client, bridge):
        bridge.fail_quote_calls(0)
        
        response = client.post("/purchase/sessions", json=SESSION_BODY)
        
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "QUOTE_FAILED"
    
    def test_no_session(self, client):
        response = client.get("/purchase/sessions/current")
        
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_ACTIVE_SESSION"
    
    def test_reset(self, client):
        client.post("/purchase/sessions", json=SESSION_BODY)
        
        response = client.delete("/purchase/sessions/current")
        assert response.status_code == 200
        assert response.json()["data"] == {"reset": True}
        assert client.get("/purchase/sessions/current").status_code == 404
    
    def test_invalid_request(self, client):
        body = {**SESSION_BODY, "refund_to": ""}
        response = client.post("/purchase/sessions", json=body)
        assert response.status_code == 422


class TestTicketApi:
    """票据 API 测试"""
    
    def test_select_ticket(self, client):
        client.post("/purchase/sessions", json=SESSION_BODY)
        
        response = client.post("/purchase/sessions/current/select/1")
        assert response.status_code == 200
        assert response.json()["data"]["selected_index"] == 1
        
        response = client.post("/purchase/sessions/current/select/9")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TICKET_NOT_FOUND"
    
    def test_check_ticket(self, client, bridge):
        client.post("/purchase/sessions", json=SESSION_BODY)
        bridge.set_status_error(True)
        
        response = client.post("/purchase/tickets/0/check")
        
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "SERVICE_ERROR"
    
    def test_proof_download(self, client, bridge):
        bridge.set_default_status(SwapStatus.SUCCESS)
        client.post("/purchase/sessions", json=SESSION_BODY)
        
        data = _wait_for_session(client, lambda d: d["all_completed"])
        
        assert data["state"] == "success"
        assert data["total_claim_amount"] == str(2 * TOKENS_PER_PROOF)
        assert data["tickets"][0]["proof"]["proof_reference"] == "ref-deposit-0"
        
        response = client.get("/purchase/tickets/0/proof")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert "proof-launch-1-ref-deposit-0.zip" in response.headers["content-disposition"]
        assert response.content[:2] == b"PK"
    
    def test_proof_not_ready(self, client):
        client.post("/purchase/sessions", json=SESSION_BODY)
        
        response = client.get("/purchase/tickets/0/proof")
        
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PROOF_NOT_READY"
    
    def test_references(self, client, bridge):
        bridge.set_default_status(SwapStatus.SUCCESS)
        client.post("/purchase/sessions", json=SESSION_BODY)
        _wait_for_session(client, lambda d: d["all_completed"])
        
        response = client.get("/purchase/references")
        
        data = response.json()["data"]
        assert data["total"] == 2
        assert {item["id"] for item in data["items"]} == {"ref-deposit-0", "ref-deposit-1"}
