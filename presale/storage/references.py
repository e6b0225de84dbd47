"""
预售系统 — 证明凭证存储

只保存证明的识别信息（proofReference、发售、额度），证明本身不落盘。
"""

import json
from pathlib import Path

from pydantic import ValidationError

from presale.common.enums import ReferenceStatus
from presale.common.exceptions import ReferenceStoreError
from presale.common.logging import get_logger
from presale.common.models import TicketReference

logger = get_logger(__name__)


class TicketReferenceStore:
    """
    证明凭证存储
    
    当前实现：JSON 文件存储，按 id 去重
    """
    
    def __init__(self, data_dir: str | Path = "data/tickets"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        
        self._file = self.data_dir / "references.json"
        self._references: dict[str, TicketReference] = self._load()
    
    # ========================================
    # CRUD
    # ========================================
    
    def save(self, reference: TicketReference) -> None:
        """保存凭证（同 id 覆盖）"""
        self._references[reference.id] = reference
        self._persist()
        logger.info(
            f"凭证已保存: {reference.id}",
            extra={"launch_id": reference.launch_id, "deposit_address": reference.deposit_address},
        )
    
    def get(self, reference_id: str) -> TicketReference | None:
        return self._references.get(reference_id)
    
    def update_status(self, reference_id: str, status: ReferenceStatus) -> bool:
        """更新凭证状态"""
        reference = self._references.get(reference_id)
        if reference is None:
            return False
        self._references[reference_id] = reference.model_copy(update={"status": status})
        self._persist()
        return True
    
    def remove(self, reference_id: str) -> bool:
        """删除凭证"""
        if reference_id not in self._references:
            return False
        del self._references[reference_id]
        self._persist()
        return True
    
    def list_all(self) -> list[TicketReference]:
        """所有凭证，最新在前"""
        return sorted(self._references.values(), key=lambda r: r.created_at, reverse=True)
    
    def list_by_launch(self, launch_address: str) -> list[TicketReference]:
        return [r for r in self.list_all() if r.launch_address == launch_address]
    
    def list_by_status(self, status: ReferenceStatus) -> list[TicketReference]:
        return [r for r in self.list_all() if r.status == status]
    
    def grouped_by_launch(self) -> dict[str, list[TicketReference]]:
        """按发售 PDA 分组"""
        groups: dict[str, list[TicketReference]] = {}
        for reference in self.list_all():
            groups.setdefault(reference.launch_address, []).append(reference)
        return groups
    
    # ========================================
    # 序列化/反序列化
    # ========================================
    
    def _load(self) -> dict[str, TicketReference]:
        """加载凭证，文件损坏时从空开始"""
        if not self._file.exists():
            return {}
        
        try:
            with open(self._file, "r", encoding="utf-8") as f:
                data = json.load(f)
            references = [TicketReference.model_validate(item) for item in data]
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"加载凭证失败: {e}")
            return {}
        
        return {r.id: r for r in references}
    
    def _persist(self) -> None:
        """写入文件"""
        data = [r.model_dump(mode="json") for r in self._references.values()]
        try:
            with open(self._file, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise ReferenceStoreError(
                f"保存凭证失败: {e}",
                details={"path": str(self._file)},
            ) from e
