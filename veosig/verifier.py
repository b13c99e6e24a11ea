# verifier.py
'''
Logic for VERIFYING the signatures of a VEO.
Contains: signature setup, signature finalisation, certificate chains, lock signatures
'''

import base64
import binascii
import logging
from typing import List, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm

from veosig import core_defs
from veosig import key_x509_manager
from veosig.report import DiagnosticLog
from veosig.sig_context import ContextArena, ContextState, SignatureContext

logger = logging.getLogger(__name__)


def setup_verification(ctx: SignatureContext, report: DiagnosticLog) -> bool:
    """
    A complete signature block has been seen: work out the algorithms and get
    the public key from the first certificate, then start a fresh digest.

    Returns:
        bool: True if the context is ready to receive bytes. On False the
              context is marked FAILED_SETUP and excluded from digesting.
    """
    location = ctx.location

    algorithms = key_x509_manager.map_signature_algorithm(ctx.algorithm_id)
    if algorithms is None:
        report.error(
            f"The signature algorithm identifier ('{ctx.algorithm_id}') contained in the "
            f"vers:SignatureAlgorithmIdentifier (M150) element is not recognised",
            location)
        ctx.state = ContextState.FAILED_SETUP
        return False
    signature_algorithm, digest_algorithm = algorithms

    # first two should never fail on a VEO that passed the DTD
    if not ctx.certificate_chains:
        report.error("The signature block does not contain any vers:CertificateBlock (M139) elements", location)
        ctx.state = ContextState.FAILED_SETUP
        return False
    first_chain = ctx.certificate_chains[0]
    if not first_chain or not first_chain[0]:
        report.error("The first vers:CertificateBlock (M139) in the signature does not contain any "
                     "vers:Certificate (M140) elements", location)
        ctx.state = ContextState.FAILED_SETUP
        return False

    try:
        certificate = key_x509_manager.load_certificate_b64(first_chain[0])
    except binascii.Error as e:
        report.error("Could not decode the Base64 containing the first vers:Certificate (M140)", location, e)
        ctx.state = ContextState.FAILED_SETUP
        return False
    except ValueError as e:
        report.error("Could not decode the first vers:Certificate (M140) in the first "
                     "vers:CertificateBlock (M139) element", location, e)
        ctx.state = ContextState.FAILED_SETUP
        return False

    try:
        public_key = certificate.public_key()
    except (UnsupportedAlgorithm, ValueError) as e:
        report.error("The public key in the first certificate is invalid", location, e)
        ctx.state = ContextState.FAILED_SETUP
        return False
    if not _check_key_type(public_key, signature_algorithm, location, report):
        ctx.state = ContextState.FAILED_SETUP
        return False

    try:
        digest = key_x509_manager.new_digest(digest_algorithm)
    except UnsupportedAlgorithm as e:
        report.error(f"The signature algorithm '{signature_algorithm}' is not supported by the "
                     f"cryptographic backend", location, e)
        ctx.state = ContextState.FAILED_SETUP
        return False

    ctx.signature_algorithm = signature_algorithm
    ctx.digest_algorithm = digest_algorithm
    ctx.hash_algorithm = digest.algorithm
    ctx.digest = digest
    ctx.certificate = certificate
    ctx.public_key = public_key
    logger.debug(f"Set up {signature_algorithm} verification for {location}")
    return True


def _check_key_type(public_key, signature_algorithm: str, location: str,
                    report: DiagnosticLog) -> bool:
    if key_x509_manager.key_matches_algorithm(public_key, signature_algorithm):
        return True
    report.error(f"The public key in the first certificate ({type(public_key).__name__}) is invalid "
                 f"for the signature algorithm '{signature_algorithm}'", location)
    return False


def initialise_verification(ctx: SignatureContext, data: bytes):
    """Replay bytes into a context's digest (preamble, or the signature a lock signs)."""
    ctx.update(data)


def finalise_verification(
    ctx: SignatureContext,
    arena: ContextArena,
    report: DiagnosticLog,
    verbose: bool = False
) -> bool:
    """
    The enclosing vers:SignedObject has closed: check the signature against the
    accumulated digest, then every certificate chain, then the lock signature.
    Every check runs even after an earlier one has failed.

    Returns:
        bool: True if the signature, its certificate chains and its lock signature all verified.
    """
    # only the first signature block takes part when checking a single layer
    if not ctx.active:
        return True
    if ctx.state is ContextState.FAILED_SETUP:
        return False

    location = ctx.location
    passed = True
    digest = ctx.finish_digest()

    signature: Optional[bytes] = None
    try:
        signature = base64.b64decode(ctx.signature_value or "", validate=True)
    except binascii.Error as e:
        report.error(f"Base64 decoding of signature failed for {location}", exc=e)
        passed = False

    if signature is not None:
        try:
            key_x509_manager.verify_prehashed(ctx.public_key, signature, digest, ctx.hash_algorithm)
            logger.info(f"  {location}: Signature verification: PASS")
            if verbose:
                report.info(f"{location} VERIFIED")
        except (InvalidSignature, TypeError, ValueError) as e:
            report.error(f"Signature verification failed for {location}")
            logger.debug(f"  {location}: verification error {e!r}")
            passed = False
            _check_reversed_signature(ctx, signature, digest, report)

        if verbose:
            _dump_signature_info(ctx, signature, digest, report)

    for chain in ctx.certificate_chains:
        passed = verify_certificate_chain(location, chain, report, verbose) and passed

    for handle in ctx.locks:
        passed = _verify_lock_signature(ctx, arena[handle], arena, report, verbose) and passed

    return passed


def _verify_lock_signature(
    ctx: SignatureContext,
    lock: SignatureContext,
    arena: ContextArena,
    report: DiagnosticLog,
    verbose: bool
) -> bool:
    # defects in the lock block itself were reported when it closed
    if lock.state is ContextState.FAILED_SETUP:
        return False
    if not setup_verification(lock, report):
        return False
    initialise_verification(lock, (ctx.signature_value or "").encode('latin-1'))
    return finalise_verification(lock, arena, report, verbose)


def _check_reversed_signature(ctx: SignatureContext, signature: bytes, digest: bytes,
                              report: DiagnosticLog):
    """
    Legacy producers wrote the signature least significant octet first. This
    only adds an explanation; the signature has failed either way.
    """
    try:
        key_x509_manager.verify_prehashed(ctx.public_key, signature[::-1], digest, ctx.hash_algorithm)
    except (InvalidSignature, TypeError, ValueError):
        return
    report.warning("The signature is reversed (i.e. the most significant octet is the last octet). "
                   "Such signatures do not conform to RSA's PKCS #1. These signatures should be "
                   "reversed when the VEO is generated", ctx.location)


def _dump_signature_info(ctx: SignatureContext, signature: bytes, digest: bytes,
                         report: DiagnosticLog):
    location = ctx.location
    report.info(f"Signature/Hash algorithm: {ctx.signature_algorithm}", location)
    report.info(f"Signature (base64): {ctx.signature_value}", location)
    report.info(f"Signature (hex): {signature.hex().upper()}", location)
    report.info(f"Hash of signed object: {digest.hex().upper()}", location)
    if ctx.certificate is not None:
        report.info(f"Certificate: {key_x509_manager.describe_certificate(ctx.certificate)}", location)


def verify_certificate_chain(location: str, chain: List[str], report: DiagnosticLog,
                             verbose: bool = False) -> bool:
    """
    Each certificate must be signed by the next one in the chain, and the
    final certificate must be self signed. All links are checked.
    A certificate that cannot be decoded ends the check of this chain.
    """
    if not chain:
        report.error(f"No vers:Certificate (M140) elements found in a vers:CertificateBlock (M139) in {location}")
        return False

    try:
        certificate = key_x509_manager.load_certificate_b64(chain[0])
    except (binascii.Error, ValueError) as e:
        report.error(f"First certificate could not be decoded from {location} (it could be empty). "
                     f"Remaining certificates have not been checked", exc=e)
        return False

    passed = True
    for i in range(1, len(chain)):
        try:
            signer = key_x509_manager.load_certificate_b64(chain[i])
        except (binascii.Error, ValueError) as e:
            report.error(f"Could not decode the {core_defs.ordinal(i + 1)} vers:Certificate (M140) in the "
                         f"vers:CertificateBlock (M139) element in {location}. "
                         f"Remaining certificates have not been checked", exc=e)
            return False
        if not _verify_certificate(i, certificate, signer, report):
            if verbose:
                report.info(f"Certificate that failed verification: "
                            f"{key_x509_manager.describe_certificate(certificate)}", location)
                report.info(f"Signing Certificate: {key_x509_manager.describe_certificate(signer)}", location)
            passed = False
        certificate = signer

    # final certificate should be self signed...
    if not _verify_certificate(len(chain), certificate, certificate, report):
        passed = False

    if not key_x509_manager.is_self_issued(certificate):
        subject = certificate.subject.rfc4514_string()
        issuer = certificate.issuer.rfc4514_string()
        report.error(f"Final certificate is not self signed (Subject: {subject} & Issuer: {issuer} "
                     f"are not the same)", location)
        passed = False
    return passed


def _verify_certificate(position: int, certificate: x509.Certificate, signer: x509.Certificate,
                        report: DiagnosticLog) -> bool:
    """Checks that `signer` created `certificate` (1-based position of `certificate`)."""
    try:
        key_x509_manager.verify_certificate_signature(certificate, signer.public_key())
    except InvalidSignature as e:
        if certificate is signer:
            report.error(f"Signature of final certificate ({position}) was not self signed and failed to verify", exc=e)
        else:
            report.error(f"Signature of certificate {position} failed to verify", exc=e)
        return False
    except UnsupportedAlgorithm as e:
        report.error(f"Problem with certificate {position}: No Such Algorithm", exc=e)
        return False
    except (TypeError, ValueError) as e:
        report.error(f"Problem with certificate {position}: invalid public key in Certificate", exc=e)
        return False
    return True


def verify_level(head: Optional[int], arena: ContextArena, report: DiagnosticLog,
                 verbose: bool = False) -> bool:
    """Finalise every signature registered on a nesting level that just closed."""
    passed = True
    for ctx in arena.level(head):
        passed = finalise_verification(ctx, arena, report, verbose) and passed
    return passed
