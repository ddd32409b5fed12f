"""
tests/test_crypto.py
Issuer key service: initialisation, personal-message signing, recovery.
"""
import pytest
from eth_account.messages import _hash_eip191_message, encode_defunct

from conftest import DEMO_ADDRESS
from core.crypto import (
    DEMO_PRIVATE_KEY,
    IssuerKeyService,
    personal_message_digest,
    split_signature,
)
from core.errors import NotInitialized
from core.hashing import keccak256


class TestInitialisation:
    """Tests for issuer key lifecycle."""

    def test_demo_key_address(self, issuer):
        """The development key maps to its well-known address."""
        assert issuer.address() == DEMO_ADDRESS

    def test_empty_key_falls_back_to_demo(self):
        """An empty key uses the demo key when allowed."""
        service = IssuerKeyService()
        service.initialize("")
        assert service.address() == DEMO_ADDRESS

    def test_empty_key_refused_when_demo_disallowed(self):
        """Production refuses to start without key material."""
        service = IssuerKeyService()
        with pytest.raises(NotInitialized):
            service.initialize("", allow_demo=False)

    def test_key_without_prefix(self):
        """A key without 0x is accepted."""
        service = IssuerKeyService()
        service.initialize(DEMO_PRIVATE_KEY[2:])
        assert service.address() == DEMO_ADDRESS

    def test_invalid_key(self):
        """A zero scalar is not a valid key."""
        service = IssuerKeyService()
        with pytest.raises(NotInitialized):
            service.initialize("0x" + "00" * 32)

    def test_uninitialised_service_refuses(self):
        """Signing before initialize raises NotInitialized."""
        service = IssuerKeyService()
        assert not service.is_ready()
        with pytest.raises(NotInitialized):
            service.personal_sign(b"\x00" * 32)

    def test_teardown_wipes_key(self, issuer):
        """After teardown the service is unusable."""
        issuer.teardown()
        with pytest.raises(NotInitialized):
            issuer.address()


class TestPersonalSign:
    """Tests for personal-message signatures."""

    def test_signature_shape(self, issuer):
        """Signatures are 65 bytes with v in {27, 28}."""
        signature = issuer.personal_sign(keccak256(b"hello"))
        assert len(signature) == 65
        v, r, s = split_signature(signature)
        assert v in (27, 28)
        assert r.startswith("0x") and len(r) == 66
        assert s.startswith("0x") and len(s) == 66

    def test_recover_round_trip(self, issuer):
        """Recovery over the same digest yields the issuer."""
        digest = keccak256(b"racepass")
        signature = issuer.personal_sign(digest)
        assert issuer.recover_personal(digest, signature) == issuer.address()
        assert issuer.is_issuer(issuer.recover_personal(digest, signature))

    def test_recover_other_digest_differs(self, issuer):
        """A signature does not recover to the issuer over another digest."""
        signature = issuer.personal_sign(keccak256(b"one"))
        assert issuer.recover_personal(keccak256(b"two"), signature) != issuer.address()

    def test_prefix_convention(self):
        """The digest signed is keccak("\\x19Ethereum Signed Message:\\n32" ‖ hash)."""
        digest = keccak256(b"payload")
        assert personal_message_digest(digest) == bytes(_hash_eip191_message(encode_defunct(primitive=digest)))

    def test_split_rejects_bad_length(self):
        """split_signature requires 65 bytes."""
        with pytest.raises(ValueError):
            split_signature(b"\x00" * 64)
