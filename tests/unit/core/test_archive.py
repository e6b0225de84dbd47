"""证明压缩包测试"""

import io
import json
import struct
import zipfile

import pytest

from presale.common.exceptions import InvalidProofArchiveError, ProofNotReadyError
from presale.core.archive import (
    build_compact_proof,
    build_proof_zip,
    load_proof_zip,
    proof_zip_filename,
    validate_proof_zip,
)
from tests.mocks.services import make_proof_result


def _zip(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


class TestCompactProof:
    """紧凑格式测试"""
    
    def test_layout(self):
        compact = build_compact_proof(b"abc", b"de")
        assert compact[:4] == struct.pack("<I", 3)
        assert compact[4:7] == b"abc"
        assert compact[7:11] == struct.pack("<I", 2)
        assert compact[11:] == b"de"


class TestProofZip:
    """证明压缩包测试"""
    
    def test_contents(self):
        data = build_proof_zip(make_proof_result("deposit-0"))
        
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = set(zf.namelist())
            metadata = json.loads(zf.read("metadata.json"))
            readme = zf.read("README.txt").decode("utf-8")
        
        assert names == {
            "proof.bin",
            "public_inputs.bin",
            "compact_proof.bin",
            "metadata.json",
            "README.txt",
        }
        assert metadata["proofReference"] == "ref-deposit-0"
        assert metadata["claimAmount"] == "1000000000"
        assert "1.0000 PRE" in readme
        assert "$5.000000" in readme
    
    def test_filename(self):
        metadata = make_proof_result("deposit-0").metadata
        assert proof_zip_filename(metadata) == "proof-launch-1-ref-deposit-0.zip"
    
    def test_unverified_rejected(self):
        with pytest.raises(ProofNotReadyError):
            build_proof_zip(make_proof_result("deposit-0", verified=False))
    
    def test_load_rebuilds_compact_proof(self):
        result = make_proof_result("deposit-0")
        data = _zip({
            "proof.bin": result.proof,
            "public_inputs.bin": result.public_inputs,
            "metadata.json": result.metadata.model_dump_json(by_alias=True).encode(),
        })
        archive = load_proof_zip(data)
        
        assert archive.proof == result.proof
        assert archive.compact_proof == build_compact_proof(result.proof, result.public_inputs)
        assert archive.metadata.launch_pda == "LaunchPda111"
    
    def test_load_missing_metadata(self):
        with pytest.raises(InvalidProofArchiveError):
            load_proof_zip(_zip({"proof.bin": b"x", "public_inputs.bin": b"y"}))
    
    def test_load_not_a_zip(self):
        with pytest.raises(InvalidProofArchiveError):
            load_proof_zip(b"not a zip")


class TestValidateProofZip:
    """压缩包校验测试"""
    
    def test_valid(self):
        validation = validate_proof_zip(build_proof_zip(make_proof_result("deposit-0")))
        assert validation.valid
        assert validation.claim_amount == 1_000_000_000
    
    def test_short_proof(self):
        metadata = make_proof_result("deposit-0").metadata.model_dump_json(by_alias=True)
        data = _zip({
            "proof.bin": bytes(10),
            "public_inputs.bin": bytes(64),
            "metadata.json": metadata.encode(),
        })
        validation = validate_proof_zip(data)
        assert not validation.valid
        assert validation.error == "证明数据过短"
    
    def test_short_public_inputs(self):
        metadata = make_proof_result("deposit-0").metadata.model_dump_json(by_alias=True)
        data = _zip({
            "proof.bin": bytes(256),
            "public_inputs.bin": bytes(8),
            "metadata.json": metadata.encode(),
        })
        assert not validate_proof_zip(data).valid
    
    def test_invalid_archive(self):
        validation = validate_proof_zip(b"garbage")
        assert not validation.valid
        assert validation.error
