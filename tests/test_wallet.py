"""
Wallet Tests

Keystore loading, address derivation and signatures.
"""

import base64
import hashlib
import json

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from iota_offchain.codec import PERSONAL_MESSAGE_INTENT, TRANSACTION_INTENT
from iota_offchain.exceptions import SigningError, SigningUnavailableError
from iota_offchain.wallet import ED25519_FLAG, Ed25519Keypair, KeystoreSigner, derive_address


def verify(serialized: bytes, message: bytes, domain_tag: bytes = TRANSACTION_INTENT) -> None:
    """Raise InvalidSignature unless serialized signs message under domain_tag"""
    assert serialized[0] == ED25519_FLAG
    signature, public_key = serialized[1:65], serialized[65:]
    digest = hashlib.blake2b(domain_tag + message, digest_size=32).digest()
    Ed25519PublicKey.from_public_bytes(public_key).verify(signature, digest)


def keystore_entry(seed: bytes, flag: int = ED25519_FLAG) -> str:
    return base64.b64encode(bytes([flag]) + seed).decode()


class TestKeypair:
    """Tests for Ed25519 keys and addresses"""

    def test_address_derivation(self, keypair):
        expected = "0x" + hashlib.blake2b(b"\x00" + keypair.public_key, digest_size=32).hexdigest()
        assert keypair.address == expected
        assert derive_address(keypair.public_key) == expected
        assert len(keypair.address) == 66

    def test_seed_is_deterministic(self):
        assert Ed25519Keypair.from_seed(bytes(32)).address == Ed25519Keypair.from_seed(bytes(32)).address
        assert Ed25519Keypair.generate().address != Ed25519Keypair.generate().address

    def test_signature_verifies(self, keypair):
        signature = keypair.sign(b"tx bytes")
        assert len(signature) == 1 + 64 + 32
        verify(signature, b"tx bytes")

    def test_signature_is_domain_separated(self, keypair):
        signature = keypair.sign(b"hello", PERSONAL_MESSAGE_INTENT)
        verify(signature, b"hello", PERSONAL_MESSAGE_INTENT)
        with pytest.raises(InvalidSignature):
            verify(signature, b"hello", TRANSACTION_INTENT)


class TestKeystoreSigner:
    """Tests for the file keystore"""

    def test_load_keystore(self, tmp_path, keypair):
        path = tmp_path / "iota.keystore"
        path.write_text(json.dumps([keystore_entry(bytes(range(32))), keystore_entry(bytes(32))]))
        signer = KeystoreSigner.from_file(path)
        assert signer.addresses()[0] == keypair.address
        assert len(signer.addresses()) == 2

    def test_non_ed25519_entries_skipped(self, tmp_path):
        path = tmp_path / "iota.keystore"
        path.write_text(json.dumps([keystore_entry(bytes(32), flag=0x01), keystore_entry(bytes(32))]))
        assert len(KeystoreSigner.from_file(path).addresses()) == 1

    def test_missing_keystore(self, tmp_path):
        with pytest.raises(SigningError):
            KeystoreSigner.from_file(tmp_path / "missing.keystore")

    def test_invalid_keystore(self, tmp_path):
        path = tmp_path / "iota.keystore"
        path.write_text("not json")
        with pytest.raises(SigningError):
            KeystoreSigner.from_file(path)

    def test_sign_for_address(self, signer, sender):
        verify(signer.sign(sender, b"payload"), b"payload")

    def test_unknown_address(self, signer):
        with pytest.raises(SigningUnavailableError):
            signer.sign("0x" + "ab" * 32, b"payload")
