"""
tests/test_credential.py
Credential build, MAC, verification and fingerprint.
"""
import json

import pytest

from conftest import PINNED_NOW, SUBJECT_A
from core.credential import (
    build_credential,
    credential_fingerprint,
    sign_credential,
    verify_credential,
    verify_fingerprint,
)
from core.errors import InvalidSubject, NotInitialized
from core.hashing import canonical_json, keccak256, sha256

SECRET = "default-secret"


@pytest.fixture
def signed():
    return sign_credential(build_credential(SUBJECT_A, PINNED_NOW), SECRET, PINNED_NOW)


class TestBuild:
    """Tests for credential assembly."""

    def test_shape(self):
        """Credential carries id, dates, subject and a verification block."""
        credential = build_credential(SUBJECT_A.upper().replace("0X", "0x"), PINNED_NOW)
        assert credential["id"].startswith("racepass:")
        assert credential["subject"] == SUBJECT_A
        assert credential["issuanceDate"] == "2026-03-01T12:00:00.000Z"
        assert credential["expirationDate"] == "2027-03-01T12:00:00.000Z"
        assert credential["verification"] == {
            "type": "KYC",
            "status": "verified",
            "verifiedAt": "2026-03-01T12:00:00.000Z",
        }

    def test_unique_ids(self):
        """Every build gets a fresh UUID."""
        assert build_credential(SUBJECT_A, PINNED_NOW)["id"] != build_credential(SUBJECT_A, PINNED_NOW)["id"]

    def test_rejects_bad_subject(self):
        """Malformed subjects are refused."""
        with pytest.raises(InvalidSubject):
            build_credential("0x1234", PINNED_NOW)

    def test_no_personal_data(self, signed):
        """Nothing resembling name, DOB or ID number appears."""
        text = json.dumps(signed).lower()
        for forbidden in ("name", "dob", "birth", "aadhaar", "idnumber"):
            assert forbidden not in text


class TestMac:
    """Tests for the HMAC-style proof."""

    def test_proof_value(self, signed):
        """proof.value is SHA-256(canonical(credential without proof) ‖ secret)."""
        unsigned = {k: v for k, v in signed.items() if k != "proof"}
        expected = sha256(canonical_json(unsigned) + SECRET.encode()).hex()
        assert signed["proof"]["type"] == "HmacSha256"
        assert signed["proof"]["value"] == expected

    def test_verify(self, signed):
        """A freshly signed credential verifies."""
        assert verify_credential(signed, SECRET)

    def test_tamper_detected(self, signed):
        """Changing any field breaks the MAC."""
        tampered = dict(signed, expirationDate="2099-01-01T00:00:00.000Z")
        assert not verify_credential(tampered, SECRET)

    def test_wrong_secret(self, signed):
        """A different secret does not verify."""
        assert not verify_credential(signed, "other-secret")

    def test_missing_proof(self):
        """An unsigned credential does not verify."""
        assert not verify_credential(build_credential(SUBJECT_A, PINNED_NOW), SECRET)

    def test_empty_secret(self):
        """No secret, no MAC."""
        with pytest.raises(NotInitialized):
            sign_credential(build_credential(SUBJECT_A, PINNED_NOW), "", PINNED_NOW)


class TestFingerprint:
    """Tests for the 32-byte anchor fingerprint."""

    def test_definition(self, signed):
        """Fingerprint is keccak over the canonical {id, subject, issuanceDate, proof}."""
        expected = keccak256(canonical_json({
            "id": signed["id"],
            "subject": signed["subject"],
            "issuanceDate": signed["issuanceDate"],
            "proof": signed["proof"]["value"],
        }))
        assert credential_fingerprint(signed) == expected
        assert len(expected) == 32

    def test_json_round_trip(self, signed):
        """Serialising and reloading the credential keeps its fingerprint."""
        reloaded = json.loads(json.dumps(signed))
        assert credential_fingerprint(reloaded) == credential_fingerprint(signed)
        assert verify_fingerprint(reloaded, credential_fingerprint(signed))

    def test_ignores_fields_outside_subset(self, signed):
        """Fields outside the subset do not move the fingerprint."""
        other = dict(signed, expirationDate="2030-01-01T00:00:00.000Z")
        assert credential_fingerprint(other) == credential_fingerprint(signed)
