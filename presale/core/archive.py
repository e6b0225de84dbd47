"""
预售系统 — 证明压缩包

下载的证明打包为 ZIP：
- proof.bin / public_inputs.bin / compact_proof.bin
- metadata.json（驼峰字段）
- README.txt
"""

import io
import json
import struct
import zipfile
from dataclasses import dataclass
from decimal import Decimal

from pydantic import ValidationError

from presale.common.exceptions import InvalidProofArchiveError, ProofNotReadyError
from presale.common.models import ProofMetadata, ProofResult
from presale.common.utils import format_token_amount

MIN_PROOF_SIZE = 256
MIN_PUBLIC_INPUTS_SIZE = 64

README_TEMPLATE = """\
ZK PROOF - TOKEN CLAIM TICKET
=============================

This archive holds the zero-knowledge proof for one claim ticket.

PURCHASE
  Paid:            ${swap_amount_usd} ({swap_amount_in} {swap_token_symbol})
  Claim amount:    {claim_amount} {token_symbol}
  Price per token: ${price_per_token}

LAUNCH
  Launch:          {launch_id}
  Token:           {token_symbol}
  Creator:         {creator}...
  Proof reference: {proof_reference}
  Generated:       {created_at}

CLAIMING
  1. Open the claim page after the sale ends
  2. Upload this ZIP file
  3. Sign the claim transaction

Each proof can be used once. Keep this file private.
"""


@dataclass(frozen=True)
class ProofArchive:
    """解包后的证明"""
    proof: bytes
    public_inputs: bytes
    compact_proof: bytes
    metadata: ProofMetadata


@dataclass(frozen=True)
class ArchiveValidation:
    """压缩包校验结果"""
    valid: bool
    error: str | None = None
    metadata: ProofMetadata | None = None
    claim_amount: int | None = None


def build_compact_proof(proof: bytes, public_inputs: bytes) -> bytes:
    """紧凑格式: u32le 长度 + proof + u32le 长度 + public_inputs"""
    return (
        struct.pack("<I", len(proof)) + proof
        + struct.pack("<I", len(public_inputs)) + public_inputs
    )


def proof_zip_filename(metadata: ProofMetadata) -> str:
    return f"proof-{metadata.launch_id}-{metadata.proof_reference}.zip"


def _render_readme(metadata: ProofMetadata, decimals: int) -> str:
    price = (Decimal(metadata.price_per_token or "0") / Decimal(1_000_000)).quantize(Decimal("0.000001"))
    return README_TEMPLATE.format(
        swap_amount_usd=metadata.swap_amount_usd,
        swap_amount_in=metadata.swap_amount_in,
        swap_token_symbol=metadata.swap_token_symbol,
        claim_amount=format_token_amount(metadata.claim_amount, decimals),
        token_symbol=metadata.token_symbol,
        price_per_token=price,
        launch_id=metadata.launch_id,
        creator=metadata.creator_wallet[:12],
        proof_reference=metadata.proof_reference,
        created_at=metadata.created_at,
    )


def build_proof_zip(result: ProofResult, decimals: int = 9) -> bytes:
    """
    打包已通过校验的证明
    
    Raises:
        ProofNotReadyError: 证明未通过校验
    """
    if not result.is_verified or result.metadata is None:
        raise ProofNotReadyError(
            result.error or result.verification.error or "证明未通过校验",
        )
    
    metadata = result.metadata
    compact = result.compact_proof or build_compact_proof(result.proof, result.public_inputs)
    
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("proof.bin", result.proof)
        zf.writestr("public_inputs.bin", result.public_inputs)
        zf.writestr("compact_proof.bin", compact)
        zf.writestr(
            "metadata.json",
            json.dumps(metadata.model_dump(by_alias=True), indent=2, ensure_ascii=False),
        )
        zf.writestr("README.txt", _render_readme(metadata, decimals))
    
    return buffer.getvalue()


def load_proof_zip(data: bytes) -> ProofArchive:
    """
    解包证明
    
    compact_proof.bin 缺失时由 proof 和 public_inputs 重建。
    
    Raises:
        InvalidProofArchiveError: 不是 ZIP 或缺少必要文件
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = set(zf.namelist())
            for required in ("proof.bin", "public_inputs.bin", "metadata.json"):
                if required not in names:
                    raise InvalidProofArchiveError(f"证明压缩包缺少 {required}")
            
            proof = zf.read("proof.bin")
            public_inputs = zf.read("public_inputs.bin")
            if "compact_proof.bin" in names:
                compact = zf.read("compact_proof.bin")
            else:
                compact = build_compact_proof(proof, public_inputs)
            raw_metadata = zf.read("metadata.json")
    except zipfile.BadZipFile as e:
        raise InvalidProofArchiveError(f"无效的 ZIP 文件: {e}") from e
    
    try:
        metadata = ProofMetadata.model_validate(json.loads(raw_metadata))
    except (ValueError, ValidationError) as e:
        raise InvalidProofArchiveError(f"metadata.json 无效: {e}") from e
    
    return ProofArchive(
        proof=proof,
        public_inputs=public_inputs,
        compact_proof=compact,
        metadata=metadata,
    )


def validate_proof_zip(data: bytes) -> ArchiveValidation:
    """校验证明压缩包，不抛出异常"""
    try:
        archive = load_proof_zip(data)
    except InvalidProofArchiveError as e:
        return ArchiveValidation(valid=False, error=e.message)
    
    if len(archive.proof) < MIN_PROOF_SIZE:
        return ArchiveValidation(valid=False, error="证明数据过短")
    if len(archive.public_inputs) < MIN_PUBLIC_INPUTS_SIZE:
        return ArchiveValidation(valid=False, error="公共输入过短")
    if not archive.metadata.launch_pda:
        return ArchiveValidation(valid=False, error="metadata 缺少发售 PDA")
    if not archive.metadata.claim_amount:
        return ArchiveValidation(valid=False, error="metadata 缺少领取数量")
    
    try:
        claim_amount = int(archive.metadata.claim_amount)
    except ValueError:
        return ArchiveValidation(valid=False, error="领取数量无效")
    
    return ArchiveValidation(
        valid=True,
        metadata=archive.metadata,
        claim_amount=claim_amount,
    )
