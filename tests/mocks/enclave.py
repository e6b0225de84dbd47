"""模拟 TEE 端的加解密"""

import json
from typing import Any

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from presale.clients.envelope import derive_key, open_sealed, public_key_bytes, seal


class FakeEnclave:
    """按 TEE 协议解密请求并加密响应"""
    
    def __init__(self):
        self.private_key = X25519PrivateKey.generate()
        self.received: list[dict[str, Any]] = []
    
    @property
    def pubkey_hex(self) -> str:
        return public_key_bytes(self.private_key).hex()
    
    def open_request(self, body: dict[str, str]) -> dict[str, Any]:
        key = derive_key(self.private_key, bytes.fromhex(body["ephemeral_pubkey"]))
        plaintext = open_sealed(
            key,
            bytes.fromhex(body["ciphertext"]),
            bytes.fromhex(body["nonce"]),
        )
        payload = json.loads(plaintext)
        self.received.append(payload)
        return payload
    
    def seal_response(self, user_pubkey_hex: str, payload: dict[str, Any]) -> dict[str, str]:
        ephemeral = X25519PrivateKey.generate()
        key = derive_key(ephemeral, bytes.fromhex(user_pubkey_hex))
        ciphertext, nonce = seal(key, json.dumps(payload).encode("utf-8"))
        return {
            "ephemeral_pubkey": public_key_bytes(ephemeral).hex(),
            "ciphertext": ciphertext.hex(),
            "nonce": nonce.hex(),
        }
