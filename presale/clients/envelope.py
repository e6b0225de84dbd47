"""
预售系统 — TEE 请求加密信封

X25519 密钥交换 + SHA-256 派生密钥 + ChaCha20-Poly1305 加密。
每个请求使用新的临时密钥对和用户密钥对，响应用用户私钥解密。
"""

import hashlib
import json
import os
from typing import Any

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

KEY_DERIVATION_SUFFIX = b"tee-proof-generator-key-v1"
NONCE_SIZE = 12


def public_key_bytes(private_key: X25519PrivateKey) -> bytes:
    """原始 32 字节公钥"""
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def derive_key(private_key: X25519PrivateKey, peer_public: bytes) -> bytes:
    """ECDH 共享密钥 -> 对称密钥"""
    shared = private_key.exchange(X25519PublicKey.from_public_bytes(peer_public))
    return hashlib.sha256(shared + KEY_DERIVATION_SUFFIX).digest()


def seal(key: bytes, plaintext: bytes) -> tuple[bytes, bytes]:
    """加密，返回 (ciphertext, nonce)"""
    nonce = os.urandom(NONCE_SIZE)
    return ChaCha20Poly1305(key).encrypt(nonce, plaintext, None), nonce


def open_sealed(key: bytes, ciphertext: bytes, nonce: bytes) -> bytes:
    """解密，认证失败时抛出 cryptography.exceptions.InvalidTag"""
    return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, None)


class ProofEnvelope:
    """
    单次证明请求的加密信封
    
    使用示例:
        envelope = ProofEnvelope(enclave_pubkey)
        body = envelope.seal_request({"deposit_address": "..."})
        result = envelope.open_response(response_json)
    """
    
    def __init__(self, enclave_pubkey: bytes):
        if len(enclave_pubkey) != 32:
            raise ValueError(f"TEE 公钥长度无效: {len(enclave_pubkey)}")
        self.enclave_pubkey = enclave_pubkey
        self._ephemeral_key = X25519PrivateKey.generate()
        self._user_key = X25519PrivateKey.generate()
    
    @property
    def user_pubkey(self) -> bytes:
        return public_key_bytes(self._user_key)
    
    def seal_request(self, payload: dict[str, Any]) -> dict[str, str]:
        """加密请求载荷"""
        key = derive_key(self._ephemeral_key, self.enclave_pubkey)
        plaintext = json.dumps(payload).encode("utf-8")
        ciphertext, nonce = seal(key, plaintext)
        
        return {
            "ephemeral_pubkey": public_key_bytes(self._ephemeral_key).hex(),
            "nonce": nonce.hex(),
            "ciphertext": ciphertext.hex(),
            "user_pubkey": self.user_pubkey.hex(),
        }
    
    def open_response(self, response: dict[str, Any]) -> dict[str, Any]:
        """
        解密 TEE 响应
        
        Raises:
            KeyError: 缺少字段
            ValueError: 十六进制或 JSON 无效
            InvalidTag: 认证失败
        """
        server_pubkey = bytes.fromhex(response["ephemeral_pubkey"])
        ciphertext = bytes.fromhex(response["ciphertext"])
        nonce = bytes.fromhex(response["nonce"])
        
        key = derive_key(self._user_key, server_pubkey)
        plaintext = open_sealed(key, ciphertext, nonce)
        return json.loads(plaintext.decode("utf-8"))
