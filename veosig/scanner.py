# scanner.py
'''
Single pass signature checker for a VEO.

The original (unstripped) VEO is read once. Whitespace bytes are dropped;
every other byte is first delivered to all live signature contexts and then
to the tag recognizer, whose events build signature contexts, open and close
nesting levels, and trigger verification when a vers:SignedObject closes.
'''

import logging
import os
from dataclasses import dataclass
from functools import partial
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

import portalocker
from portalocker import LOCK_NB, LOCK_SH

from veosig.config import Config
from veosig import core_defs
from veosig import verifier
from veosig.forest import SignatureForest
from veosig.recognizer import Action, Event, TagRecognizer
from veosig.report import Diagnostic, DiagnosticLog
from veosig.sig_context import ContextArena, ContextKind, SignatureContext

logger = logging.getLogger(__name__)


@dataclass
class _BlockBuilder:
    """The signature block and certificate chain currently being read."""
    context: Optional[SignatureContext] = None
    chain: Optional[List[str]] = None
    # until the first vers:SignatureBlock is found
    first_signature_block: bool = True


class _ScanRun:
    """Everything owned by one verification run. Nothing is shared between runs."""

    def __init__(self, one_layer: bool, verbose: bool, veo_name: str):
        self.one_layer = one_layer
        self.verbose = verbose
        self.report = DiagnosticLog(veo_name)
        self.recognizer = TagRecognizer()
        self.arena = ContextArena()
        self.forest = SignatureForest(self.arena)
        self.builder = _BlockBuilder()
        # true while inside a signed object of a vers:RevisedVEO
        self.ignore_signed_object = False
        self.failed = False
        self.layers_verified = 0

        self._handlers: Dict[Action, Callable[[Optional[str]], bool]] = {
            Action.SIGNATURE_BLOCK_START: self._signature_block_start,
            Action.LOCK_BLOCK_START: self._lock_block_start,
            Action.BLOCK_ID: self._block_id,
            Action.SIGNS_BLOCK_ID: self._block_id,
            Action.ALGORITHM_ID: self._algorithm_id,
            Action.SIGNATURE_VALUE: self._signature_value,
            Action.CERTIFICATE_BLOCK_START: self._certificate_block_start,
            Action.CERTIFICATE: self._certificate,
            Action.CERTIFICATE_BLOCK_END: self._certificate_block_end,
            Action.BLOCK_END: self._block_end,
            Action.SIGNED_OBJECT_START: self._signed_object_start,
            Action.SIGNED_OBJECT_END: self._signed_object_end,
        }

    def consume(self, chunk: bytes):
        data = chunk.translate(None, core_defs.WHITESPACE)
        feed = self.recognizer.feed
        start = 0
        for i, byte in enumerate(data):
            event = feed(byte)
            if event is None:
                continue
            # contexts see this byte before the action can change which contexts are live
            self.forest.feed(data[start:i + 1])
            start = i + 1
            if not self.perform_action(event):
                self.failed = True
        if start < len(data):
            self.forest.feed(data[start:])

    def perform_action(self, event: Event) -> bool:
        logger.debug(f"Recognised {event.action.value}")
        return self._handlers[event.action](event.text)

    # --- signature blocks ---

    def _abandon_block(self) -> bool:
        """A block whose end tag was never recognised cannot be verified."""
        ctx = self.builder.context
        if ctx is None:
            return True
        self.builder.context = None
        self.builder.chain = None
        self.report.error("The signature block could not be parsed and has not been verified", ctx.location)
        return False

    def _signature_block_start(self, _text: Optional[str]) -> bool:
        passed = self._abandon_block()
        active = not self.one_layer or self.builder.first_signature_block
        self.builder.first_signature_block = False
        self.builder.context = self.arena.new(ContextKind.ORDINARY, active)
        return passed

    def _lock_block_start(self, _text: Optional[str]) -> bool:
        passed = self._abandon_block()
        self.builder.context = self.arena.new(ContextKind.LOCK, True)
        return passed

    def _block_id(self, text: Optional[str]) -> bool:
        self.builder.context.set_id(text)
        return True

    def _algorithm_id(self, text: Optional[str]) -> bool:
        self.builder.context.set_algorithm(text)
        return True

    def _signature_value(self, text: Optional[str]) -> bool:
        self.builder.context.set_signature(text)
        return True

    def _certificate_block_start(self, _text: Optional[str]) -> bool:
        self.builder.chain = []
        return True

    def _certificate(self, text: Optional[str]) -> bool:
        self.builder.chain.append(text)
        return True

    def _certificate_block_end(self, _text: Optional[str]) -> bool:
        self.builder.context.add_certificate_chain(self.builder.chain)
        self.builder.chain = None
        return True

    def _block_end(self, _text: Optional[str]) -> bool:
        ctx = self.builder.context
        self.builder.context = None
        self.builder.chain = None
        ctx.close()
        passed = True
        # with one layer, a lock is only set up when the block it signs is finalised
        if ctx.active and not (ctx.is_lock and self.one_layer):
            passed = verifier.setup_verification(ctx, self.report)
        self.forest.register(ctx)
        return passed

    # --- nesting levels ---

    def _signed_object_start(self, _text: Optional[str]) -> bool:
        if not self._abandon_block():
            self.failed = True
        # no signature block seen at this level: this is the vers:SignedObject of a vers:RevisedVEO
        if not self.forest.has_pending_signatures:
            self.ignore_signed_object = True
            logger.debug("Ignoring vers:SignedObject without preceding signature blocks")
            return True
        passed = self.forest.resolve_locks(self.report)
        self.forest.push(core_defs.SIGNED_OBJECT_PREAMBLE)
        return passed

    def _signed_object_end(self, _text: Optional[str]) -> bool:
        if self.ignore_signed_object:
            self.ignore_signed_object = False
            return True
        head = self.forest.pop()
        if head is None:
            self.report.error("Found a vers:SignedObject end tag that does not close a signed vers:SignedObject")
            return False
        self.layers_verified += 1
        return verifier.verify_level(head, self.arena, self.report, self.verbose)

    def finish(self) -> bool:
        if self.forest.depth > 0:
            self.report.error(f"{self.forest.depth} vers:SignedObject element(s) were not closed. "
                              f"Their signatures have not been verified")
            self.failed = True
        if self.builder.context is not None:
            self.report.error("The VEO ended inside a signature block", self.builder.context.location)
            self.failed = True
        if self.forest.has_pending_signatures:
            self.report.warning("Signature block(s) were not followed by a vers:SignedObject "
                                "and have not been verified")
        if self.layers_verified == 0:
            self.report.error("No signatures were found in the VEO")
            self.failed = True

        passed = not self.failed and not self.report.has_errors
        if passed:
            self.report.info("All signatures tested are valid")
        return passed


class SignatureScanner:
    """
    Checks every signature of a VEO in one pass over the file.

    Args:
        one_layer (bool): only the first signature block (outer layer) is verified.
        verbose (bool): add signature and certificate dumps to the diagnostics.
        read_size (int): bytes read from the stream per call.
    """

    def __init__(self, one_layer: Optional[bool] = None, verbose: Optional[bool] = None,
                 read_size: Optional[int] = None):
        self.one_layer = Config.ONE_LAYER if one_layer is None else one_layer
        self.verbose = Config.VERBOSE if verbose is None else verbose
        self.read_size = read_size or Config.READ_BUFFER_SIZE

    def verify(self, stream: BinaryIO, veo_name: str = "") -> Tuple[bool, List[Diagnostic]]:
        run = _ScanRun(self.one_layer, self.verbose, veo_name)
        try:
            for chunk in iter(partial(stream.read, self.read_size), b""):
                run.consume(chunk)
        except OSError as e:
            run.report.error("Error when reading VEO", exc=e)
            return False, run.report.records
        passed = run.finish()
        logger.info(f"Signature check of '{veo_name}': {'PASS' if passed else 'FAIL'}")
        return passed, run.report.records

    def verify_file(self, path) -> Tuple[bool, List[Diagnostic]]:
        """Opens the VEO under a shared lock so a writer cannot change it mid-scan."""
        veo_name = str(path)
        if not os.path.exists(veo_name):
            report = DiagnosticLog(veo_name)
            report.error(f"VEO file '{veo_name}' not found")
            return False, report.records
        try:
            with portalocker.Lock(veo_name, "rb", flags=LOCK_SH | LOCK_NB, timeout=Config.LOCK_TIMEOUT) as f:
                return self.verify(f, veo_name)
        except (portalocker.exceptions.LockException, OSError) as e:
            report = DiagnosticLog(veo_name)
            report.error(f"Could not open or lock VEO file '{veo_name}'", exc=e)
            return False, report.records


def verify(stream: BinaryIO, one_layer: bool = False, verbose: bool = False) -> Tuple[bool, List[Diagnostic]]:
    """Checks the signatures of the VEO read from `stream`."""
    return SignatureScanner(one_layer=one_layer, verbose=verbose).verify(stream)


def verify_file(path, one_layer: Optional[bool] = None,
                verbose: Optional[bool] = None) -> Tuple[bool, List[Diagnostic]]:
    return SignatureScanner(one_layer=one_layer, verbose=verbose).verify_file(path)
