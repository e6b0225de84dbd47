"""证明凭证存储测试"""

import pytest

from presale.common.enums import ReferenceStatus
from presale.common.models import TicketReference
from presale.storage.references import TicketReferenceStore


def _reference(ref_id: str, launch: str = "LaunchPda111", created_at: int = 1) -> TicketReference:
    return TicketReference(
        id=ref_id,
        launch_id="launch-1",
        launch_address=launch,
        launch_name="Presale Token",
        token_symbol="PRE",
        claim_amount="1000000000",
        deposit_address=f"deposit-{ref_id}",
        created_at=created_at,
    )


@pytest.fixture
def store(tmp_path):
    return TicketReferenceStore(tmp_path)


class TestTicketReferenceStore:
    """凭证存储测试"""
    
    def test_save_and_reload(self, store, tmp_path):
        store.save(_reference("a"))
        
        reloaded = TicketReferenceStore(tmp_path)
        assert reloaded.get("a") == _reference("a")
    
    def test_save_upserts(self, store):
        store.save(_reference("a"))
        store.save(_reference("a", created_at=5))
        
        assert len(store.list_all()) == 1
        assert store.get("a").created_at == 5
    
    def test_no_proof_bytes_persisted(self, store, tmp_path):
        store.save(_reference("a"))
        content = (tmp_path / "references.json").read_text(encoding="utf-8")
        assert "proof" not in content
    
    def test_update_status(self, store):
        store.save(_reference("a"))
        
        assert store.update_status("a", ReferenceStatus.CLAIMED)
        assert not store.update_status("missing", ReferenceStatus.CLAIMED)
        assert store.list_by_status(ReferenceStatus.CLAIMED)[0].id == "a"
        assert store.list_by_status(ReferenceStatus.PENDING) == []
    
    def test_remove(self, store):
        store.save(_reference("a"))
        
        assert store.remove("a")
        assert not store.remove("a")
        assert store.list_all() == []
    
    def test_by_launch_and_grouping(self, store):
        store.save(_reference("a", created_at=1))
        store.save(_reference("b", created_at=2))
        store.save(_reference("c", launch="OtherPda", created_at=3))
        
        assert [r.id for r in store.list_by_launch("LaunchPda111")] == ["b", "a"]
        groups = store.grouped_by_launch()
        assert set(groups) == {"LaunchPda111", "OtherPda"}
        assert [r.id for r in groups["OtherPda"]] == ["c"]
    
    def test_corrupt_file(self, tmp_path):
        (tmp_path / "references.json").write_text("{not json", encoding="utf-8")
        assert TicketReferenceStore(tmp_path).list_all() == []
