"""Asymmetric key generation and PEM import/export.

Private keys export as PKCS#8, public keys as SubjectPublicKeyInfo, both PEM.
"""

from __future__ import annotations

from typing import Tuple
import base64
import hashlib

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa, x25519

from sealbox.core.exceptions import KeyFormatError


RSA_PUBLIC_EXPONENT = 65537
DEFAULT_RSA_BITS = 4096


def generate_rsa_keypair(bits: int = DEFAULT_RSA_BITS) -> Tuple[rsa.RSAPrivateKey, rsa.RSAPublicKey]:
    if bits < 2048:
        raise ValueError("RSA keys must be at least 2048 bits")
    private_key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=bits)
    return private_key, private_key.public_key()


def generate_ec_keypair() -> Tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """P-256 (prime256v1) key pair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


def generate_ed25519_keypair() -> Tuple[ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey]:
    private_key = ed25519.Ed25519PrivateKey.generate()
    return private_key, private_key.public_key()


def generate_x25519_keypair() -> Tuple[x25519.X25519PrivateKey, x25519.X25519PublicKey]:
    private_key = x25519.X25519PrivateKey.generate()
    return private_key, private_key.public_key()


def _to_bytes(value) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def export_private_pem(private_key, passphrase=None) -> bytes:
    """PKCS#8 PEM, encrypted with the best available scheme when a passphrase is given."""
    if passphrase:
        encryption = serialization.BestAvailableEncryption(_to_bytes(passphrase))
    else:
        encryption = serialization.NoEncryption()
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def export_public_pem(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_private_pem(data, passphrase=None):
    password = _to_bytes(passphrase) if passphrase else None
    try:
        return serialization.load_pem_private_key(_to_bytes(data), password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        # wrong passphrase and garbage input look the same from here
        raise KeyFormatError("could not load private key") from exc


def load_public_pem(data):
    try:
        return serialization.load_pem_public_key(_to_bytes(data))
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise KeyFormatError("could not load public key") from exc


def public_key_id(public_key) -> str:
    """base64url (unpadded) SHA-256 of the public key's SPKI PEM."""
    digest = hashlib.sha256(export_public_pem(public_key)).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
