"""
tests/test_attestation.py
Claim grammar, attestation signing/verification and eligibility proofs.
"""
from dataclasses import replace

import pytest

from conftest import DEMO_ADDRESS, PINNED_NOW, SUBJECT_A, SUBJECT_B
from core.attestation import (
    Attestation,
    AttestationService,
    attestation_message_hash,
    claim_hash,
    validate_claim,
)
from core.crypto import IssuerKeyService
from core.eligibility import EventRequirements
from core.errors import UnknownClaim
from core.hashing import keccak256, solidity_keccak


@pytest.fixture
def service(issuer):
    return AttestationService(issuer)


class TestClaimGrammar:
    """Tests for the fixed claim grammar."""

    @pytest.mark.parametrize("claim", [
        "identityVerified", "countryResident:IN", "ageAbove:0", "ageAbove:18", "ageAbove:255",
    ])
    def test_accepts(self, claim):
        """Well-formed claims pass."""
        assert validate_claim(claim) == claim

    @pytest.mark.parametrize("claim", [
        "IdentityVerified", "identityverified", "countryResident:in", "countryResident:IND",
        "ageAbove:256", "ageAbove:018", "ageAbove:", "ageAbove:-1", "isAdult", "", "ageAbove:18\n",
    ])
    def test_rejects(self, claim):
        """Anything else raises UnknownClaim."""
        with pytest.raises(UnknownClaim):
            validate_claim(claim)


class TestSignVerify:
    """Tests for single attestations."""

    def test_hashes(self, service):
        """claimHash and messageHash follow the packed definitions."""
        att = service.sign(SUBJECT_A, "ageAbove:18", 42)
        assert att.claim_hash == keccak256(b"ageAbove:18")
        assert att.message_hash == solidity_keccak(
            ["address", "bytes32", "uint256"], [SUBJECT_A, claim_hash("ageAbove:18"), 42]
        )
        assert att.message_hash == attestation_message_hash(SUBJECT_A, "ageAbove:18", 42)

    def test_recovers_to_issuer(self, service, issuer):
        """Recovery over the messageHash yields the issuer address."""
        att = service.sign(SUBJECT_A, "identityVerified", 1)
        assert att.issuer == DEMO_ADDRESS
        assert issuer.recover_personal(att.message_hash, att.signature) == DEMO_ADDRESS
        assert service.verify(att)

    def test_tampered_claim_fails(self, service):
        """Swapping the claim invalidates the attestation."""
        att = service.sign(SUBJECT_A, "ageAbove:18", 1)
        assert not service.verify(replace(att, claim="ageAbove:21"))

    def test_tampered_subject_fails(self, service):
        """Moving an attestation to another subject invalidates it."""
        att = service.sign(SUBJECT_A, "identityVerified", 1)
        assert not service.verify(replace(att, subject=SUBJECT_B))

    def test_other_issuer_fails(self, service):
        """An attestation from another key is rejected."""
        other = IssuerKeyService()
        other.initialize("0x" + "11" * 32)
        foreign = AttestationService(other).sign(SUBJECT_A, "identityVerified", 1)
        assert not service.verify(foreign)

    def test_case_distinct_claims(self, service):
        """Claims are byte-compared, so capitalisation matters."""
        with pytest.raises(UnknownClaim):
            service.sign(SUBJECT_A, "IDENTITYVERIFIED", 1)

    def test_nonce_range(self, service):
        """Nonces must fit in a uint64."""
        with pytest.raises(ValueError):
            service.sign(SUBJECT_A, "identityVerified", -1)
        with pytest.raises(ValueError):
            service.sign(SUBJECT_A, "identityVerified", 2 ** 64)

    def test_reused_nonce_not_detected(self, service):
        """The signer does not track nonces."""
        first = service.sign(SUBJECT_A, "identityVerified", 7)
        second = service.sign(SUBJECT_A, "identityVerified", 7)
        assert service.verify(first) and service.verify(second)

    def test_dict_round_trip(self, service):
        """to_dict / from_dict keeps the attestation verifiable."""
        att = service.sign(SUBJECT_A, "countryResident:IN", 99, PINNED_NOW)
        restored = Attestation.from_dict(att.to_dict())
        assert restored == att
        assert service.verify(restored)

    def test_wire_proof_fields(self, service):
        """The wire proof carries exactly the verifier fields."""
        proof = service.sign(SUBJECT_A, "identityVerified", 3).proof()
        assert set(proof) == {"claim", "claimHash", "nonce", "signature", "v", "r", "s"}


class TestEligibilityProofs:
    """Tests for per-event attestation sets."""

    def test_consecutive_nonces_in_claim_order(self, service):
        """Nonces are base, base+1, base+2 in the order age, identity, country."""
        req = EventRequirements(min_age=18, require_identity=True, require_country=True)
        proofs = service.generate_eligibility(SUBJECT_A, 25, "IN", req, 1000)
        assert [a.claim for a in proofs.attestations] == ["ageAbove:18", "identityVerified", "countryResident:IN"]
        assert [a.nonce for a in proofs.attestations] == [1000, 1001, 1002]
        assert proofs.disclosures == {"ageAboveMin": True, "identityVerified": True, "countryResident": True}
        assert all(service.verify(a) for a in proofs.attestations)

    def test_underage_produces_nothing(self, service):
        """An ineligible subject gets no attestations."""
        proofs = service.generate_eligibility(SUBJECT_A, 17, "IN", EventRequirements(min_age=18), 1)
        assert not proofs.decision.eligible
        assert proofs.attestations == []
        assert proofs.disclosures["ageAboveMin"] is False
