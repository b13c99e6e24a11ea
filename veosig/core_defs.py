# core_defs.py
'''
Common definitions and constants shared between the tag recognizer,
the signature contexts and the verifier.
'''

from typing import Dict, Tuple, Type

from cryptography.hazmat.primitives import hashes


# Bytes that never reach the recognizer or a digest (space, tab, CR, LF).
# The VEO producer signed the document with these removed.
WHITESPACE = b' \t\r\n'

# Consumed by the recognizer before any context of a new level is live,
# so it is replayed into the level when the level is pushed.
SIGNED_OBJECT_PREAMBLE = b"<vers:SignedObject"

# --- SIGNATURE ALGORITHMS ---
# vers:SignatureAlgorithmIdentifier OID -> (signature algorithm, digest algorithm)
SIGNATURE_ALGORITHMS: Dict[str, Tuple[str, str]] = {
    "1.2.840.10040.4.3": ("SHA1withDSA", "SHA1"),
    "1.2.840.113549.1.1.2": ("MD2withRSA", "MD2"),
    "1.2.840.113549.1.1.4": ("MD5withRSA", "MD5"),
    "1.2.840.113549.1.1.5": ("SHA1withRSA", "SHA-1"),
    "1.2.840.113549.1.1.11": ("SHA256withRSA", "SHA-256"),
    "1.2.840.113549.1.1.12": ("SHA384withRSA", "SHA-384"),
    "1.2.840.113549.1.1.13": ("SHA512withRSA", "SHA-512"),
}

# Digest name -> cryptography hash. MD2 has no implementation in the backend.
DIGEST_ALGORITHMS: Dict[str, Type[hashes.HashAlgorithm]] = {
    "SHA1": hashes.SHA1,
    "SHA-1": hashes.SHA1,
    "MD5": hashes.MD5,
    "SHA-256": hashes.SHA256,
    "SHA-384": hashes.SHA384,
    "SHA-512": hashes.SHA512,
}


def ordinal(n: int) -> str:
    """English ordinal for positions in a certificate chain (1 -> 'first')."""
    words = {1: "first", 2: "second", 3: "third"}
    if n in words:
        return words[n]
    return f"{n}th"
