"""
core/crypto.py — Issuer Key Service
=====================================
Holds the issuer's secp256k1 key. Attestations and tickets are signed through
here and nowhere else.

Provides:
- address()              → issuer account address (EIP-55)
- personal_sign(digest)  → 65-byte r‖s‖v over the Ethereum personal-message digest
- recover_personal(...)  → account address that produced a signature

Signing uses the "\\x19Ethereum Signed Message:\\n32" convention so that a
contract recovering with the same prefix agrees with the off-chain result.
"""

import logging
from typing import Optional, Tuple, Union

from eth_account import Account
from eth_account.messages import encode_defunct

from core.errors import NotInitialized
from core.hashing import keccak256, to_bytes32, to_hex

logger = logging.getLogger("racepass.crypto")

# Well-known local development key (Hardhat account #0). Never for production.
DEMO_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"


def personal_message_digest(digest: bytes) -> bytes:
    """keccak256("\\x19Ethereum Signed Message:\\n32" ‖ digest) — what ecrecover sees."""
    return keccak256(PERSONAL_MESSAGE_PREFIX + to_bytes32(digest))


def split_signature(signature: bytes) -> Tuple[int, str, str]:
    """Split a 65-byte compact signature into (v, r, s) for contract calls."""
    if len(signature) != 65:
        raise ValueError("signature must be 65 bytes")
    return signature[64], to_hex(signature[:32]), to_hex(signature[32:64])


class IssuerKeyService:
    """
    Process-wide issuer key. Built once by the CoreContext at startup,
    initialized with key material, wiped on teardown.
    """

    def __init__(self):
        self._account = None

    def initialize(self, private_key: Optional[str] = None, allow_demo: bool = True):
        """
        Load the issuer key. An empty key falls back to the demo key only when
        allow_demo is set (development / test); production must supply one.
        """
        if not private_key:
            if not allow_demo:
                raise NotInitialized("ISSUER_PRIVATE_KEY is required outside development.")
            logger.warning("ISSUER_PRIVATE_KEY not configured — using the demo issuer key")
            private_key = DEMO_PRIVATE_KEY
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        try:
            self._account = Account.from_key(key)
        except Exception as exc:  # eth-keys raises its own ValidationError for out-of-range scalars
            raise NotInitialized("ISSUER_PRIVATE_KEY is not a valid secp256k1 key.") from exc
        logger.info(f"Issuer key initialized: {self._account.address}")

    def teardown(self):
        self._account = None
        logger.info("Issuer key wiped.")

    def is_ready(self) -> bool:
        return self._account is not None

    def _require(self):
        if self._account is None:
            raise NotInitialized()
        return self._account

    # ── Public API ──────────────────────────────────────────────────────────
    def address(self) -> str:
        return self._require().address

    def personal_sign(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest under the personal-message prefix."""
        account = self._require()
        message = encode_defunct(primitive=to_bytes32(digest))
        signed = account.sign_message(message)
        return bytes(signed.signature)

    def recover_personal(self, digest: bytes, signature: Union[bytes, str]) -> str:
        """Return the EIP-55 address that signed `digest` (personal-message form)."""
        message = encode_defunct(primitive=to_bytes32(digest))
        return Account.recover_message(message, signature=signature)

    def is_issuer(self, address: str) -> bool:
        return address.lower() == self.address().lower()
