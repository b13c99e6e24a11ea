import base64

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

import veo_factory
from veo_factory import cert_b64
from veosig import verifier
from veosig.report import DiagnosticLog, Severity
from veosig.sig_context import ContextArena, ContextKind, ContextState

LOCATION = 'Signature (vers:id="Revision-1-Signature-1")'
SIGNED = b'<vers:SignedObjectvers:VEOVersion="2.0"><vers:Title>Minutes</vers:Title></vers:SignedObject>'


def closed_context(arena, signer, algorithm=veo_factory.SHA256_WITH_RSA, signature=None, chains=None,
                   kind=ContextKind.ORDINARY, block_id="Revision-1-Signature-1"):
    ctx = arena.new(kind)
    ctx.set_id(block_id)
    ctx.set_algorithm(algorithm)
    if signature is None:
        signature = base64.b64encode(veo_factory.sign_bytes(signer.private_key, SIGNED)).decode('ascii')
    ctx.set_signature(signature)
    for chain in chains if chains is not None else [[cert_b64(c) for c in signer.chain]]:
        ctx.add_certificate_chain(chain)
    ctx.close()
    return ctx


def messages(report, severity=Severity.ERROR):
    return [d.message for d in report.records if d.severity is severity]


def test_valid_signature(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer)
    assert verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED)
    assert verifier.finalise_verification(ctx, arena, report)
    assert report.records == []
    assert ctx.state is ContextState.FINALIZED


def test_verbose_reports_verified_signature(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer)
    verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED)
    assert verifier.finalise_verification(ctx, arena, report, verbose=True)
    info = messages(report, Severity.INFO)
    assert f"{LOCATION} VERIFIED" in info
    assert any(m.startswith("Signature/Hash algorithm: SHA256withRSA") for m in info)


def test_wrong_bytes_fail(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer)
    verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED.replace(b"Minutes", b"Minutez"))
    assert not verifier.finalise_verification(ctx, arena, report)
    assert messages(report) == [f"Signature verification failed for {LOCATION}"]


def test_unknown_algorithm_fails_setup(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer, algorithm="1.2.3.4")
    assert not verifier.setup_verification(ctx, report)
    assert ctx.state is ContextState.FAILED_SETUP
    assert ctx.digest is None
    [message] = messages(report)
    assert "('1.2.3.4')" in message and "is not recognised" in message
    assert not verifier.finalise_verification(ctx, arena, report)
    assert len(report.records) == 1


def test_md2_is_not_supported(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer, algorithm=veo_factory.MD2_WITH_RSA)
    assert not verifier.setup_verification(ctx, report)
    assert "not supported by the cryptographic backend" in messages(report)[0]


def test_key_type_must_match_algorithm(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer, algorithm=veo_factory.SHA1_WITH_DSA)
    assert not verifier.setup_verification(ctx, report)
    assert "invalid for the signature algorithm 'SHA1withDSA'" in messages(report)[0]


def test_unreadable_public_key_fails_setup(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer, chains=[[veo_factory.unknown_key_certificate(signer)]])
    assert not verifier.setup_verification(ctx, report)
    assert ctx.state is ContextState.FAILED_SETUP
    assert messages(report) == ["The public key in the first certificate is invalid"]
    assert not verifier.finalise_verification(ctx, arena, report)


def test_missing_certificates_fail_setup(signer):
    arena, report = ContextArena(), DiagnosticLog()
    assert not verifier.setup_verification(closed_context(arena, signer, chains=[]), report)
    assert not verifier.setup_verification(closed_context(arena, signer, chains=[[]]), report)
    assert not verifier.setup_verification(closed_context(arena, signer, chains=[["@@@"]]), report)
    errors = messages(report)
    assert "does not contain any vers:CertificateBlock (M139)" in errors[0]
    assert "does not contain any vers:Certificate (M140)" in errors[1]
    assert errors[2].startswith("Could not decode the Base64 containing the first vers:Certificate")


def test_bad_signature_base64_still_checks_chains(chained_signer, signer):
    arena, report = ContextArena(), DiagnosticLog()
    broken_chain = [cert_b64(chained_signer.certificate), cert_b64(signer.certificate)]
    ctx = closed_context(arena, chained_signer, signature="@@not-base64@@", chains=[broken_chain])
    verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED)
    assert not verifier.finalise_verification(ctx, arena, report)
    errors = messages(report)
    assert errors[0].startswith(f"Base64 decoding of signature failed for {LOCATION}")
    assert any(e.startswith("Signature of certificate 1 failed to verify") for e in errors)


def test_reversed_signature_warning(signer):
    arena, report = ContextArena(), DiagnosticLog()
    raw = veo_factory.sign_bytes(signer.private_key, SIGNED)
    ctx = closed_context(arena, signer, signature=base64.b64encode(raw[::-1]).decode('ascii'))
    verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED)
    assert not verifier.finalise_verification(ctx, arena, report)
    assert messages(report) == [f"Signature verification failed for {LOCATION}"]
    [warning] = messages(report, Severity.WARNING)
    assert "The signature is reversed" in warning


def test_inactive_context_passes_without_checks(signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = arena.new(ContextKind.ORDINARY, active=False)
    ctx.close()
    assert verifier.finalise_verification(ctx, arena, report)
    assert report.records == []


def test_lock_signature(signer, lock_signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer)
    lock_value = base64.b64encode(veo_factory.sign_bytes(
        lock_signer.private_key, ctx.signature_value.encode('ascii'))).decode('ascii')
    lock = closed_context(arena, lock_signer, signature=lock_value, kind=ContextKind.LOCK)
    assert verifier.setup_verification(lock, report)
    ctx.locks.append(lock.handle)

    verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED)
    assert verifier.finalise_verification(ctx, arena, report)
    assert report.records == []


def test_lock_signing_other_bytes_fails(signer, lock_signer):
    arena, report = ContextArena(), DiagnosticLog()
    ctx = closed_context(arena, signer)
    lock_value = base64.b64encode(lock_signer.private_key.sign(
        b"something else", padding.PKCS1v15(), hashes.SHA256())).decode('ascii')
    lock = closed_context(arena, lock_signer, signature=lock_value, kind=ContextKind.LOCK)
    verifier.setup_verification(lock, report)
    ctx.locks.append(lock.handle)

    verifier.setup_verification(ctx, report)
    verifier.initialise_verification(ctx, SIGNED)
    assert not verifier.finalise_verification(ctx, arena, report)
    assert messages(report) == [
        'Signature verification failed for Lock Signature (signs vers:Signature "Revision-1-Signature-1")'
    ]


# --- certificate chains ---

def test_chain_of_one_self_signed(signer):
    report = DiagnosticLog()
    assert verifier.verify_certificate_chain(LOCATION, [cert_b64(signer.certificate)], report)
    assert report.records == []


def test_chain_to_root(chained_signer):
    report = DiagnosticLog()
    chain = [cert_b64(c) for c in chained_signer.chain]
    assert verifier.verify_certificate_chain(LOCATION, chain, report)
    assert report.records == []


def test_chain_of_one_not_self_signed(chained_signer):
    report = DiagnosticLog()
    assert not verifier.verify_certificate_chain(LOCATION, [cert_b64(chained_signer.certificate)], report)
    errors = messages(report)
    assert errors[0].startswith("Signature of final certificate (1) was not self signed and failed to verify")
    assert errors[1].startswith("Final certificate is not self signed (Subject: ")
    # only the final certificate check runs on a chain of one
    assert not any(e.startswith("Signature of certificate") for e in errors)


def test_broken_link(chained_signer, signer):
    report = DiagnosticLog()
    chain = [cert_b64(chained_signer.certificate), cert_b64(signer.certificate)]
    assert not verifier.verify_certificate_chain(LOCATION, chain, report, verbose=True)
    errors = messages(report)
    assert len(errors) == 1
    assert errors[0].startswith("Signature of certificate 1 failed to verify")
    assert any(m.startswith("Signing Certificate: ") for m in messages(report, Severity.INFO))


def test_undecodable_second_certificate(chained_signer):
    report = DiagnosticLog()
    chain = [cert_b64(chained_signer.certificate), "@@@", cert_b64(chained_signer.chain[1])]
    assert not verifier.verify_certificate_chain(LOCATION, chain, report)
    [error] = messages(report)
    assert error.startswith("Could not decode the second vers:Certificate (M140)")
    assert "Remaining certificates have not been checked" in error


def test_undecodable_first_certificate():
    report = DiagnosticLog()
    assert not verifier.verify_certificate_chain(LOCATION, ["Tm90IGEgY2VydGlmaWNhdGU="], report)
    assert messages(report)[0].startswith(f"First certificate could not be decoded from {LOCATION}")


def test_empty_chain():
    report = DiagnosticLog()
    assert not verifier.verify_certificate_chain(LOCATION, [], report)
    assert messages(report)[0].startswith("No vers:Certificate (M140) elements found")


def test_verify_level_checks_every_context(signer, second_signer):
    arena, report = ContextArena(), DiagnosticLog()
    good = closed_context(arena, signer)
    bad = closed_context(arena, second_signer, block_id="Revision-1-Signature-2",
                         signature=base64.b64encode(veo_factory.sign_bytes(
                             second_signer.private_key, b"other")).decode('ascii'))
    for ctx in (good, bad):
        verifier.setup_verification(ctx, report)
        verifier.initialise_verification(ctx, SIGNED)
    bad.next = good.handle
    assert not verifier.verify_level(bad.handle, arena, report)
    assert good.state is ContextState.FINALIZED
    assert messages(report) == ['Signature verification failed for Signature (vers:id="Revision-1-Signature-2")']
