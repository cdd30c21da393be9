"""Single-use SSH key material."""

from __future__ import annotations

from dataclasses import dataclass
from io import StringIO

import paramiko
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
)

__all__ = ["KeyPair"]


@dataclass(frozen=True)
class KeyPair:
    """An Ed25519 key pair that lives only as long as the process.

    The public half is handed to the helper pod and the private half is
    used to authenticate the SSH session. Neither is ever written to disk.
    """

    private_key: Ed25519PrivateKey
    """The private key."""

    public_key: str
    """Public key as a single OpenSSH ``authorized_keys`` line."""

    @classmethod
    def generate(cls) -> KeyPair:
        """Generate a fresh key pair.

        Returns
        -------
        KeyPair
            Newly generated key pair.
        """
        private_key = Ed25519PrivateKey.generate()
        public_key = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        )
        return cls(private_key=private_key, public_key=public_key.decode())

    @property
    def private_key_pem(self) -> str:
        """Private key as unencrypted PKCS#8 PEM."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()

    @property
    def private_key_openssh(self) -> str:
        """Private key in the OpenSSH private key format."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.OpenSSH,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()

    def to_paramiko(self) -> paramiko.Ed25519Key:
        """Convert the private key for use with paramiko.

        paramiko only reads Ed25519 keys in the OpenSSH format.
        """
        with StringIO(self.private_key_openssh) as f:
            return paramiko.Ed25519Key.from_private_key(f)
