"""
core/blockchain.py — Anchor Adapters
======================================
Pluggable writers that anchor a credential fingerprint on an external chain.
The core only sees the AnchorAdapter interface:
  1. "simulation" — in-memory hash-chained log, no external dependencies (start here)
  2. "ethereum"   — fingerprint registry contract on Sepolia via web3.py
  3. "polygon"    — same contract on Polygon Amoy

Set ANCHOR_BACKENDS in .env to choose (several may be active at once).
Anchoring is best-effort: a failing adapter is reported in the issuance
receipt and never blocks issuance.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from core.clock import to_iso, utcnow
from core.errors import AnchorFailure, AnchorUnavailable, ExternalError
from core.hashing import checksum_address, keccak256, normalize_address, to_bytes32, to_hex

logger = logging.getLogger("racepass.blockchain")

# Fingerprint registry ABI (same deployment on every chain)
REGISTRY_ABI = [
    {
        "name": "storeFingerprintFor",
        "type": "function",
        "inputs": [
            {"name": "_user", "type": "address"},
            {"name": "_fingerprint", "type": "bytes32"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "name": "isVerified",
        "type": "function",
        "inputs": [{"name": "_user", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
    },
    {
        "name": "getFingerprint",
        "type": "function",
        "inputs": [{"name": "_user", "type": "address"}],
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
    },
]


@dataclass
class AnchorResult:
    chain: str
    success: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    reason: Optional[str] = None
    extra: Dict[str, object] = field(default_factory=dict)

    @classmethod
    def failed(cls, chain: str, reason: str) -> "AnchorResult":
        return cls(chain=chain, success=False, reason=reason)

    def to_dict(self) -> dict:
        data = {"chain": self.chain, "success": self.success}
        if self.transaction_hash is not None:
            data["transactionHash"] = self.transaction_hash
        if self.block_number is not None:
            data["blockNumber"] = self.block_number
        if self.reason is not None:
            data["reason"] = self.reason
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AnchorResult":
        known = {"chain", "success", "transactionHash", "blockNumber", "reason"}
        return cls(
            chain=data["chain"],
            success=bool(data["success"]),
            transaction_hash=data.get("transactionHash"),
            block_number=data.get("blockNumber"),
            reason=data.get("reason"),
            extra={k: v for k, v in data.items() if k not in known},
        )


class AnchorAdapter(ABC):
    """Interface every chain writer implements."""

    name: str = "anchor"

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    @abstractmethod
    async def anchor(self, subject: str, fingerprint: bytes) -> AnchorResult:
        """Anchor `fingerprint` for `subject`. May raise ExternalError."""

    @abstractmethod
    async def is_anchored(self, subject: str) -> bool:
        pass


# ── Simulated chain (default, works with zero setup) ────────────────────────
class SimulatedAnchor(AnchorAdapter):
    """
    In-memory hash-chained log of anchored fingerprints.
    Data resets when the process restarts.
    """

    def __init__(self, name: str = "simulation"):
        self.name = name
        self.blocks: List[dict] = []
        self.block_number = 0
        self._fingerprints: Dict[str, str] = {}

    async def connect(self):
        if not self.blocks:
            self._mine_block("GENESIS", {"message": "RacePass genesis block"}, utcnow())
        logger.info(f"{self.name}: ready (in-memory mode)")

    def _mine_block(self, block_type: str, data: dict, moment: datetime) -> dict:
        prev_hash = self.blocks[-1]["hash"] if self.blocks else to_hex(b"\x00" * 32)
        header = {
            "block_number": self.block_number,
            "block_type": block_type,
            "data": data,
            "prev_hash": prev_hash,
            "timestamp": to_iso(moment),
        }
        block = dict(header, hash=to_hex(keccak256(json.dumps(header, sort_keys=True).encode())))
        self.blocks.append(block)
        self.block_number += 1
        return block

    async def anchor(self, subject: str, fingerprint: bytes) -> AnchorResult:
        subject = normalize_address(subject)
        fingerprint_hex = to_hex(to_bytes32(fingerprint))
        block = self._mine_block("FINGERPRINT", {"subject": subject, "fingerprint": fingerprint_hex}, utcnow())
        self._fingerprints[subject] = fingerprint_hex
        logger.info(f"{self.name}: block #{block['block_number']} anchored hash={block['hash'][:18]}...")
        return AnchorResult(
            chain=self.name,
            success=True,
            transaction_hash=block["hash"],
            block_number=block["block_number"],
        )

    async def is_anchored(self, subject: str) -> bool:
        return normalize_address(subject) in self._fingerprints

    def fingerprint_of(self, subject: str) -> Optional[str]:
        return self._fingerprints.get(normalize_address(subject))


# ── EVM chains via web3.py ────────────────────────────────────────────────────
class Web3Anchor(AnchorAdapter):
    """
    Writes to a deployed fingerprint registry on an EVM chain.
    Requires: RPC URL, contract address, and a funded issuer key.
    web3.py is synchronous, so calls run on a worker thread.
    """

    def __init__(
        self,
        name: str,
        rpc_url: str,
        contract_address: str,
        chain_id: int,
        private_key: str,
    ):
        self.name = name
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.chain_id = chain_id
        self._private_key = private_key
        self.w3 = None

    def _contract(self):
        if not self.contract_address or int(self.contract_address, 16) == 0:
            raise AnchorUnavailable(f"Contract not deployed on {self.name}.")
        if self.w3 is None:
            from web3 import Web3
            self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        if not self.w3.is_connected():
            raise AnchorUnavailable(f"Cannot connect to the {self.name} RPC endpoint.")
        return self.w3.eth.contract(address=checksum_address(self.contract_address), abi=REGISTRY_ABI)

    def _store_fingerprint(self, subject: str, fingerprint: bytes) -> AnchorResult:
        if not self._private_key:
            raise AnchorUnavailable(f"No signing key configured for {self.name}.")
        contract = self._contract()
        account = self.w3.eth.account.from_key(self._private_key)
        tx = contract.functions.storeFingerprintFor(checksum_address(subject), fingerprint).build_transaction({
            "from": account.address,
            "nonce": self.w3.eth.get_transaction_count(account.address),
            "chainId": self.chain_id,
        })
        signed = account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt.status != 1:
            raise AnchorFailure(self.name, "transaction reverted")
        return AnchorResult(
            chain=self.name,
            success=True,
            transaction_hash=to_hex(bytes(receipt.transactionHash)),
            block_number=receipt.blockNumber,
        )

    async def anchor(self, subject: str, fingerprint: bytes) -> AnchorResult:
        logger.info(f"Storing fingerprint on {self.name}...")
        try:
            return await asyncio.to_thread(self._store_fingerprint, normalize_address(subject), to_bytes32(fingerprint))
        except ExternalError:
            raise
        except Exception as exc:
            raise AnchorFailure(self.name, exc.__class__.__name__) from exc

    async def is_anchored(self, subject: str) -> bool:
        def _query():
            return bool(self._contract().functions.isVerified(checksum_address(subject)).call())

        try:
            return await asyncio.to_thread(_query)
        except Exception as exc:
            logger.warning(f"Error checking anchor on {self.name}: {exc.__class__.__name__}")
            return False


# ── Factory: builds the ordered registry from settings ──────────────────────
def create_anchor_adapters(settings) -> List[AnchorAdapter]:
    adapters: List[AnchorAdapter] = []
    for backend in settings.ANCHOR_BACKENDS:
        backend = backend.lower()
        if backend == "ethereum":
            logger.info("Using Ethereum anchor backend")
            adapters.append(Web3Anchor(
                "ethereum",
                settings.ETHEREUM_RPC_URL,
                settings.ETHEREUM_CONTRACT_ADDRESS,
                settings.ETHEREUM_CHAIN_ID,
                settings.ISSUER_PRIVATE_KEY,
            ))
        elif backend == "polygon":
            logger.info("Using Polygon anchor backend")
            adapters.append(Web3Anchor(
                "polygon",
                settings.POLYGON_RPC_URL,
                settings.POLYGON_CONTRACT_ADDRESS,
                settings.POLYGON_CHAIN_ID,
                settings.ISSUER_PRIVATE_KEY,
            ))
        elif backend == "simulation":
            logger.info("Using simulated anchor backend (development mode)")
            adapters.append(SimulatedAnchor())
        else:
            raise ValueError(f"Unknown anchor backend: {backend}")
    return adapters
