# key_x509_manager.py
'''
X.509 and public key primitives used by the signature verifier:
decoding base64 DER certificates, mapping VERS algorithm identifiers,
and checking signatures made by a certificate's key.
'''

import base64
from typing import Any, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.hazmat.backends import default_backend

from veosig import core_defs


def map_signature_algorithm(oid: Optional[str]) -> Optional[Tuple[str, str]]:
    """Returns (signature algorithm, digest algorithm) for a VERS OID, or None if unknown."""
    if oid is None:
        return None
    return core_defs.SIGNATURE_ALGORITHMS.get(oid)


def new_digest(digest_name: str) -> hashes.Hash:
    """
    Creates a fresh digest accumulator.

    Raises:
        UnsupportedAlgorithm: the backend cannot compute this digest (e.g. MD2).
    """
    factory = core_defs.DIGEST_ALGORITHMS.get(digest_name)
    if factory is None:
        raise UnsupportedAlgorithm(f"Digest algorithm '{digest_name}' is not supported by the cryptographic backend")
    return hashes.Hash(factory(), backend=default_backend())


def load_certificate_b64(text: str) -> x509.Certificate:
    """
    Decodes the content of a vers:Certificate element (base64 of DER).

    Raises:
        binascii.Error: the base64 is malformed.
        ValueError: the bytes are not a DER X.509 certificate.
    """
    der = base64.b64decode(text, validate=True)
    return x509.load_der_x509_certificate(der, default_backend())


def key_matches_algorithm(public_key: Any, signature_algorithm: str) -> bool:
    """The key family (RSA/DSA) must be the one named in the signature algorithm."""
    if signature_algorithm.endswith("withRSA"):
        return isinstance(public_key, rsa.RSAPublicKey)
    if signature_algorithm.endswith("withDSA"):
        return isinstance(public_key, dsa.DSAPublicKey)
    return False


def verify_prehashed(
    public_key: Any,
    signature: bytes,
    digest: bytes,
    hash_algorithm: hashes.HashAlgorithm
) -> None:
    """
    Verifies a signature over a digest that was accumulated elsewhere.

    Raises:
        InvalidSignature: the signature does not match.
        TypeError: unsupported key type.
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(signature, digest, padding.PKCS1v15(), Prehashed(hash_algorithm))
    elif isinstance(public_key, dsa.DSAPublicKey):
        public_key.verify(signature, digest, Prehashed(hash_algorithm))
    else:
        raise TypeError(f"Unsupported public key type for VEO signatures: {type(public_key).__name__}")


def verify_certificate_signature(cert: x509.Certificate, issuer_public_key: Any) -> None:
    """
    Checks that `cert` was signed by the holder of `issuer_public_key`.
    Only the signature is checked, names are not compared.

    Raises:
        InvalidSignature: the signature does not match.
        UnsupportedAlgorithm: the certificate's signature hash is unknown to the backend.
        TypeError: unsupported key type.
    """
    signature = cert.signature
    tbs = cert.tbs_certificate_bytes
    hash_algorithm = cert.signature_hash_algorithm

    if isinstance(issuer_public_key, rsa.RSAPublicKey):
        pad = cert.signature_algorithm_parameters
        if not isinstance(pad, (padding.PKCS1v15, padding.PSS)):
            pad = padding.PKCS1v15()
        issuer_public_key.verify(signature, tbs, pad, hash_algorithm)
    elif isinstance(issuer_public_key, dsa.DSAPublicKey):
        issuer_public_key.verify(signature, tbs, hash_algorithm)
    elif isinstance(issuer_public_key, ec.EllipticCurvePublicKey):
        issuer_public_key.verify(signature, tbs, ec.ECDSA(hash_algorithm))
    elif isinstance(issuer_public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        issuer_public_key.verify(signature, tbs)
    else:
        raise TypeError(f"Unsupported public key type in certificate: {type(issuer_public_key).__name__}")


def is_self_issued(cert: x509.Certificate) -> bool:
    return cert.subject == cert.issuer


def describe_certificate(cert: x509.Certificate) -> str:
    return (
        f"Subject: {cert.subject.rfc4514_string()} issued by: {cert.issuer.rfc4514_string()} "
        f"(serial {cert.serial_number}, valid {cert.not_valid_before_utc.isoformat()} "
        f"to {cert.not_valid_after_utc.isoformat()})"
    )
