"""
IOTA Wallet Management

Signer interface used by the execution driver, and a signer backed by an IOTA
file keystore. Keys never leave this module; the driver only sees addresses
and serialized signatures.
"""

import base64
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from .codec import TRANSACTION_INTENT, intent_message
from .exceptions import SigningError, SigningUnavailableError
from .types import normalize_hex_id


logger = logging.getLogger(__name__)

ED25519_FLAG = 0x00


class Signer(ABC):
    """Holds addresses and produces signatures for them"""

    @abstractmethod
    def addresses(self) -> List[str]:
        """Addresses this signer can sign for, in keystore order"""
        pass

    @abstractmethod
    def sign(self, address: str, message: bytes, domain_tag: bytes = TRANSACTION_INTENT) -> bytes:
        """
        Sign canonical bytes under a signing domain

        Raises:
            SigningUnavailableError: No key for the address
        """
        pass


def derive_address(public_key: bytes, flag: int = ED25519_FLAG) -> str:
    """Address = blake2b-256(flag || public key)"""
    return "0x" + hashlib.blake2b(bytes([flag]) + public_key, digest_size=32).hexdigest()


class Ed25519Keypair:
    """A single Ed25519 key with its derived address"""

    def __init__(self, private_key: Ed25519PrivateKey):
        self.private_key = private_key
        self.public_key = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.address = derive_address(self.public_key)

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519Keypair":
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def generate(cls) -> "Ed25519Keypair":
        return cls(Ed25519PrivateKey.generate())

    def sign(self, message: bytes, domain_tag: bytes = TRANSACTION_INTENT) -> bytes:
        """
        Sign blake2b-256(domain_tag || message)

        Returns:
            Serialized signature: flag || signature || public key
        """
        digest = hashlib.blake2b(intent_message(message, domain_tag), digest_size=32).digest()
        signature = self.private_key.sign(digest)
        return bytes([ED25519_FLAG]) + signature + self.public_key


class KeystoreSigner(Signer):
    """Signer over a set of Ed25519 keypairs"""

    def __init__(self, keypairs: List[Ed25519Keypair]):
        self._keys: Dict[str, Ed25519Keypair] = {}
        for keypair in keypairs:
            self._keys[keypair.address] = keypair

    @classmethod
    def from_file(cls, keystore_path: Union[str, Path]) -> "KeystoreSigner":
        """
        Load an IOTA file keystore

        The keystore is a JSON list of base64 strings, each encoding
        ``flag || 32-byte private key``. Only Ed25519 entries are supported.

        Raises:
            SigningError: If the file is missing or malformed
        """
        path = Path(keystore_path).expanduser()
        try:
            entries = json.loads(path.read_text())
        except FileNotFoundError:
            raise SigningError(f"Keystore not found: {path}")
        except json.JSONDecodeError as e:
            raise SigningError(f"Keystore {path} is not valid JSON: {e}")

        keypairs = []
        for position, entry in enumerate(entries):
            raw = base64.b64decode(entry)
            if len(raw) != 33 or raw[0] != ED25519_FLAG:
                logger.warning(f"Skipping keystore entry {position}: not an Ed25519 key")
                continue
            keypairs.append(Ed25519Keypair.from_seed(raw[1:]))

        logger.info(f"Loaded {len(keypairs)} keys from {path}")
        return cls(keypairs)

    def addresses(self) -> List[str]:
        return list(self._keys)

    def get_keypair(self, address: str) -> Optional[Ed25519Keypair]:
        return self._keys.get(normalize_hex_id(address))

    def sign(self, address: str, message: bytes, domain_tag: bytes = TRANSACTION_INTENT) -> bytes:
        keypair = self.get_keypair(address)
        if keypair is None:
            raise SigningUnavailableError(f"No key for address {address}")
        return keypair.sign(message, domain_tag)
