"""
xapi_core/crypto.py — Cryptographic primitives for xAPI statements.

Hashing and key handling use the `cryptography` library; JWS compact
serialization (RFC 7515) is delegated to PyJWT. No custom crypto.
- SHA-256 for attachment content hashes (sha2)
- JWS compact tokens for statement signatures
- RSA / RSA-PSS / ECDSA / Ed25519 keys, per the JWA algorithm names

All functions are deterministic (except key generation and the
randomized RSA-PSS / ECDSA signatures) and have no side effects.
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .errors import SignatureInvalid


PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, Ed25519PrivateKey]
PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey, Ed25519PublicKey]


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def sha256_hex(data: bytes) -> str:
    """Compute SHA-256 hash and return as lowercase hex string.

    Hashes the raw bytes exactly as transmitted: no text normalization.
    """
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# Algorithms (RFC 7518 §3.1)
# ---------------------------------------------------------------------------

_EC_CURVES = {
    "ES256": ec.SECP256R1,
    "ES384": ec.SECP384R1,
    "ES512": ec.SECP521R1,
}

SUPPORTED_ALGORITHMS = (
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
    "EdDSA",
)


def _check_algorithm(algorithm: str) -> None:
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(
            f"Unsupported signature algorithm {algorithm!r}. "
            f"Expected one of {', '.join(SUPPORTED_ALGORITHMS)}"
        )


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------

def generate_keypair(algorithm: str = "RS512") -> Tuple[PrivateKey, PublicKey]:
    """Generate a keypair suitable for the given JWA algorithm."""
    _check_algorithm(algorithm)
    if algorithm.startswith(("RS", "PS")):
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    elif algorithm.startswith("ES"):
        private_key = ec.generate_private_key(_EC_CURVES[algorithm]())
    else:
        private_key = Ed25519PrivateKey.generate()
    return private_key, private_key.public_key()


def private_key_to_pem(key: PrivateKey) -> bytes:
    """Serialize private key to PEM bytes (PKCS#8, unencrypted)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_to_pem(key: PublicKey) -> bytes:
    """Serialize public key to PEM bytes."""
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def private_key_from_pem(pem_data: bytes) -> PrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    if not isinstance(
        key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, Ed25519PrivateKey)
    ):
        raise TypeError(f"Unsupported private key type {type(key).__name__}")
    return key


def public_key_from_pem(pem_data: bytes) -> PublicKey:
    """Deserialize public key from PEM bytes."""
    key = serialization.load_pem_public_key(pem_data)
    if not isinstance(
        key, (rsa.RSAPublicKey, ec.EllipticCurvePublicKey, Ed25519PublicKey)
    ):
        raise TypeError(f"Unsupported public key type {type(key).__name__}")
    return key


def default_algorithm_for(key: Union[PrivateKey, PublicKey]) -> str:
    """Pick the conventional JWA algorithm for a key."""
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return "RS512"
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        for name, curve in _EC_CURVES.items():
            if isinstance(key.curve, curve):
                return name
        raise TypeError(f"Unsupported elliptic curve {key.curve.name}")
    if isinstance(key, (Ed25519PrivateKey, Ed25519PublicKey)):
        return "EdDSA"
    raise TypeError(f"Unsupported key type {type(key).__name__}")


def _key_matches(key: Union[PrivateKey, PublicKey], algorithm: str) -> bool:
    if algorithm.startswith(("RS", "PS")):
        return isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey))
    if algorithm.startswith("ES"):
        return (
            isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey))
            and isinstance(key.curve, _EC_CURVES[algorithm])
        )
    return isinstance(key, (Ed25519PrivateKey, Ed25519PublicKey))


# ---------------------------------------------------------------------------
# JWS compact serialization (PyJWT)
# ---------------------------------------------------------------------------

def jws_sign(
    payload: bytes, private_key: PrivateKey, algorithm: Optional[str] = None
) -> str:
    """Produce header.payload.signature over raw payload bytes.

    The header is {"alg": <algorithm>}. Without an explicit algorithm the
    conventional one for the key is used (see default_algorithm_for).

    Raises:
        ValueError: algorithm is not one of SUPPORTED_ALGORITHMS
        TypeError:  the key cannot sign with the algorithm
    """
    if algorithm is None:
        algorithm = default_algorithm_for(private_key)
    _check_algorithm(algorithm)
    if not _key_matches(private_key, algorithm):
        raise TypeError(
            f"{type(private_key).__name__} cannot be used with {algorithm}"
        )
    # typ=None drops PyJWT's default "typ": "JWT"; the payload is not a claims set
    return jwt.PyJWS().encode(
        payload, private_key, algorithm=algorithm, headers={"typ": None}
    )


def jws_verify(
    token: str,
    public_key: PublicKey,
    algorithms: Optional[Sequence[str]] = None,
) -> Tuple[Dict[str, Any], bytes]:
    """Decode and verify a compact JWS, returning (header, payload bytes).

    Raises:
        SignatureInvalid: malformed token, unsupported or disallowed
                          algorithm (including "none"), key/algorithm
                          mismatch, or a signature that does not verify.
    """
    if not isinstance(token, str) or token.count(".") != 2:
        raise SignatureInvalid("Token is not a compact JWS (expected 3 segments)")
    try:
        algorithm = jwt.get_unverified_header(token).get("alg")
    except jwt.PyJWTError as e:
        raise SignatureInvalid(f"Token is malformed: {e}") from None

    allowed = SUPPORTED_ALGORITHMS if algorithms is None else algorithms
    if algorithm not in allowed or algorithm not in SUPPORTED_ALGORITHMS:
        raise SignatureInvalid(f"Algorithm {algorithm!r} is not accepted")
    if not _key_matches(public_key, algorithm):
        raise SignatureInvalid(
            f"Algorithm {algorithm} does not match {type(public_key).__name__}"
        )

    try:
        decoded = jwt.PyJWS().decode_complete(
            token, key=public_key, algorithms=[algorithm]
        )
    except jwt.InvalidSignatureError:
        raise SignatureInvalid("Signature verification failed") from None
    except jwt.PyJWTError as e:
        raise SignatureInvalid(f"Token rejected: {e}") from None
    return decoded["header"], decoded["payload"]
