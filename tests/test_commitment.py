"""
tests/test_commitment.py
Hiding commitments: commit, open, serialisation.
"""
import pytest

from core.commitment import Commitment, commit, open_commitment
from core.errors import BadCommitment
from core.hashing import solidity_keccak, to_hex


class TestCommit:
    """Tests for commitment creation."""

    def test_definition(self):
        """commitment = keccak(packed(string value, bytes32 secret))."""
        c = commit("25")
        assert c.commitment == solidity_keccak(["string", "bytes32"], ["25", c.secret])
        assert len(c.secret) == 32

    def test_fresh_secret_each_time(self):
        """Same value, different secrets, different commitments."""
        assert commit("verified").commitment != commit("verified").commitment

    def test_explicit_secret_is_deterministic(self):
        """A supplied secret reproduces the same commitment."""
        secret = b"\x07" * 32
        assert commit(18, secret).commitment == commit("18", secret).commitment

    def test_rejects_short_secret(self):
        """Secrets must be 32 bytes."""
        with pytest.raises(BadCommitment):
            commit("1", b"\x00" * 16)


class TestOpen:
    """Tests for opening commitments."""

    def test_opens_with_right_value(self):
        """open(v, s, c) is true for the committed value."""
        c = commit("25")
        assert open_commitment("25", c.secret, c.commitment)

    @pytest.mark.parametrize("other", ["24", "26", "", "25 ", "verified"])
    def test_rejects_other_values(self, other):
        """open(v', s, c) is false for every other value."""
        c = commit("25")
        assert not open_commitment(other, c.secret, c.commitment)

    def test_accepts_hex_inputs(self):
        """Secret and commitment may be passed as 0x-hex."""
        c = commit("verified")
        assert open_commitment("verified", to_hex(c.secret), c.public())

    def test_malformed_commitment(self):
        """A commitment that is not 32 bytes raises BadCommitment."""
        c = commit("1")
        with pytest.raises(BadCommitment):
            open_commitment("1", c.secret, "0x1234")


class TestSerialisation:
    """Tests for stored form."""

    def test_value_not_persisted(self):
        """to_dict carries commitment and secret only."""
        c = commit("25")
        data = c.to_dict()
        assert set(data) == {"commitment", "secret"}
        restored = Commitment.from_dict(data)
        assert restored.value == ""
        assert open_commitment("25", restored.secret, restored.commitment)
