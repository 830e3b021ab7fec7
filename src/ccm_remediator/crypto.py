"""
Ed25519 signing of execution records.

Signatures cover the canonical JSON of the record without its signature
fields, so an orchestrator can verify that a record was not altered after
the run produced it.
"""

import json
from pathlib import Path
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey
)

from .models import ExecutionRecord


def canonical_json(data: Dict[str, Any]) -> bytes:
    """Serialize a dict deterministically for signing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


class RecordSigner:
    """Signs execution records with an Ed25519 private key."""

    def __init__(self, private_key_path: Path):
        """
        Args:
            private_key_path: Ed25519 private key, PEM or raw 32 bytes

        Raises:
            ValueError: If the key cannot be loaded
        """
        self.private_key_path = Path(private_key_path)
        self._private_key = self._load_private_key()

    def _load_private_key(self) -> Ed25519PrivateKey:
        try:
            key_data = self.private_key_path.read_bytes()
        except OSError as e:
            raise ValueError(f"Failed to read private key from {self.private_key_path}: {e}")

        if len(key_data) == 32:
            return Ed25519PrivateKey.from_private_bytes(key_data)

        try:
            private_key = serialization.load_pem_private_key(key_data, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ValueError(f"Failed to load private key from {self.private_key_path}: {e}")

        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError("Not an Ed25519 private key")
        return private_key

    def public_key_hex(self) -> str:
        return self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        ).hex()

    def sign_record(self, record: ExecutionRecord) -> ExecutionRecord:
        """Attach signature and public key to the record."""
        signature = self._private_key.sign(canonical_json(record.signable_payload()))
        record.signature = signature.hex()
        record.public_key = self.public_key_hex()
        return record


def verify_record(record: Union[ExecutionRecord, Dict[str, Any]], public_key: Union[bytes, str]) -> bool:
    """
    Verify an execution record signature.

    Args:
        record: ExecutionRecord or its JSON dict as emitted on stdout
        public_key: Raw 32-byte key or its hex encoding

    Returns:
        True if the signature is present and valid
    """
    if isinstance(record, ExecutionRecord):
        payload = record.signable_payload()
        signature = record.signature
    else:
        payload = {k: v for k, v in record.items() if k not in ("signature", "public_key")}
        signature = record.get("signature")

    if not signature:
        return False

    try:
        if isinstance(public_key, str):
            public_key = bytes.fromhex(public_key)
        Ed25519PublicKey.from_public_bytes(public_key).verify(
            bytes.fromhex(signature),
            canonical_json(payload),
        )
        return True
    except (InvalidSignature, ValueError):
        return False


def generate_keypair() -> tuple[bytes, bytes]:
    """
    Generate a new Ed25519 keypair.

    Returns:
        Tuple of (private_key_bytes, public_key_bytes) - each 32 bytes
    """
    private_key = Ed25519PrivateKey.generate()

    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )

    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )

    return private_bytes, public_bytes
