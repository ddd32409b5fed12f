"""
tests/test_hashing.py
Digests, packed encoding, hex helpers and subject normalisation.
"""
import pytest

from core.errors import InvalidSubject
from core.hashing import (
    address_to_bytes,
    canonical_json,
    checksum_address,
    from_hex,
    keccak256,
    normalize_address,
    pack_solidity,
    solidity_keccak,
    to_bytes32,
    to_hex,
)


class TestDigests:
    """Tests for keccak-256 and canonical JSON."""

    def test_keccak_empty_vector(self):
        """keccak256 of the empty string matches the Ethereum constant."""
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_keccak_is_not_sha3(self):
        """Ethereum keccak differs from NIST SHA3-256."""
        import hashlib
        assert keccak256(b"") != hashlib.sha3_256(b"").digest()

    def test_canonical_json_sorted_and_compact(self):
        """Keys are sorted recursively and no whitespace is emitted."""
        assert canonical_json({"b": 1, "a": {"z": 1, "y": 2}}) == b'{"a":{"y":2,"z":1},"b":1}'

    def test_canonical_json_order_independent(self):
        """Insertion order does not change the encoding."""
        assert canonical_json({"x": 1, "y": 2}) == canonical_json({"y": 2, "x": 1})


class TestHex:
    """Tests for hex conversions."""

    def test_round_trip(self):
        """to_hex / from_hex round-trip with 0x prefix."""
        data = bytes(range(32))
        assert from_hex(to_hex(data)) == data
        assert to_hex(data).startswith("0x")

    def test_requires_prefix(self):
        """Unprefixed hex is rejected."""
        with pytest.raises(ValueError):
            from_hex("abcd")

    def test_requires_even_length(self):
        """Odd-length hex is rejected."""
        with pytest.raises(ValueError):
            from_hex("0xabc")

    def test_bytes32_length(self):
        """to_bytes32 insists on exactly 32 bytes."""
        assert to_bytes32("0x" + "11" * 32) == b"\x11" * 32
        with pytest.raises(ValueError):
            to_bytes32(b"\x00" * 31)


class TestSubjectId:
    """Tests for subject address normalisation."""

    def test_lowercases(self):
        """Checksummed input normalises to lowercase."""
        assert normalize_address("0xF39FD6E51AAD88F6F4CE6AB8827279CFFFB92266") == \
            "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"

    def test_raw_bytes_round_trip(self):
        """Raw 20 bytes and the hex string represent the same subject."""
        subject = "0x" + "ab" * 20
        assert normalize_address(address_to_bytes(subject)) == subject

    @pytest.mark.parametrize("value", [
        "0x1234",
        "f39fd6e51aad88f6f4ce6ab8827279cfffb92266",
        "0x" + "g" * 40,
        "0x" + "a" * 40 + "\n",
        b"\x00" * 19,
        None,
    ])
    def test_rejects_malformed(self, value):
        """Anything but a 20-byte address raises InvalidSubject."""
        with pytest.raises(InvalidSubject):
            normalize_address(value)

    def test_checksum_form(self):
        """Checksum form is EIP-55."""
        assert checksum_address("0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266") == \
            "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class TestPacking:
    """Tests for abi.encodePacked-compatible packing."""

    def test_uints_are_right_aligned_to_own_width(self):
        """uint8 packs to 1 byte, uint16 to 2, uint256 to 32."""
        assert pack_solidity(["uint8", "uint16"], [1, 2]) == b"\x01\x00\x02"
        assert pack_solidity(["uint256"], [1]) == b"\x00" * 31 + b"\x01"

    def test_string_has_no_length_prefix(self):
        """Strings are raw UTF-8 bytes."""
        assert pack_solidity(["string"], ["abc"]) == b"abc"

    def test_address_is_20_bytes(self):
        """Addresses pack to their 20 raw bytes."""
        subject = "0x" + "ab" * 20
        assert pack_solidity(["address"], [subject]) == bytes.fromhex("ab" * 20)

    def test_mixed_tuple_layout(self):
        """A (address, bytes32, uint256) tuple is 84 bytes."""
        packed = pack_solidity(
            ["address", "bytes32", "uint256"],
            ["0x" + "01" * 20, b"\x02" * 32, 3],
        )
        assert len(packed) == 20 + 32 + 32
        assert packed[:20] == b"\x01" * 20
        assert packed[20:52] == b"\x02" * 32
        assert packed[-1] == 3

    def test_rejects_unsupported_type(self):
        """Types outside the supported set are refused."""
        with pytest.raises(ValueError):
            pack_solidity(["bool"], [True])

    def test_rejects_bool_as_uint(self):
        """A bool is not accepted where an integer is expected."""
        with pytest.raises(TypeError):
            pack_solidity(["uint256"], [True])

    def test_solidity_keccak_matches_manual(self):
        """solidity_keccak is keccak over the packed bytes."""
        assert solidity_keccak(["string", "uint8"], ["a", 1]) == keccak256(b"a\x01")
