# forest.py
'''
The forest of signature contexts: one level per open vers:SignedObject.

Signature blocks are registered on the level under construction as they
close. When the vers:SignedObject that follows them opens, lock signatures
are linked to the blocks they sign and the level is pushed: its head
becomes the new root and the previous root becomes its `child`. Every open
level receives every retained byte until its vers:SignedObject closes.
'''

import logging
from typing import List, Optional

from veosig import verifier
from veosig.report import DiagnosticLog
from veosig.sig_context import ContextArena, ContextState, SignatureContext

logger = logging.getLogger(__name__)


def _is_live(ctx: SignatureContext) -> bool:
    return ctx.active and ctx.state is ContextState.PENDING and ctx.digest is not None


class SignatureForest:

    def __init__(self, arena: ContextArena):
        self.arena = arena
        self.root: Optional[int] = None
        self.depth = 0
        # level under construction: ordinary blocks (most recent first) and lock blocks
        self._head: Optional[int] = None
        self._locks: List[int] = []
        # every context that currently receives bytes, rebuilt on push/pop
        self._live: List[SignatureContext] = []

    @property
    def live_contexts(self) -> List[SignatureContext]:
        return list(self._live)

    @property
    def has_pending_signatures(self) -> bool:
        """False if no vers:SignatureBlock has been registered since the last push."""
        return self._head is not None

    def register(self, ctx: SignatureContext):
        if ctx.is_lock:
            self._locks.append(ctx.handle)
        else:
            ctx.next = self._head
            self._head = ctx.handle

    def resolve_locks(self, report: DiagnosticLog) -> bool:
        """Link each lock signature to the signature block it claims to sign."""
        passed = True
        for handle in self._locks:
            lock = self.arena[handle]
            target = None
            for ctx in self.arena.level(self._head):
                if ctx.block_id is not None and ctx.block_id == lock.block_id:
                    target = ctx
                    break
            if target is None:
                report.error(
                    f"Lock signature validation failed: The Lock Signature purports to sign vers:Signature "
                    f"element with vers:id '{lock.block_id}' but this element does not exist",
                    lock.location)
                passed = False
            else:
                target.locks.append(handle)
                logger.debug(f"Linked {lock.location} to {target.location}")
        self._locks = []
        return passed

    def push(self, preamble: bytes):
        """
        Open a new level from the registered blocks. `preamble` is the part
        of the start tag the recognizer consumed before the level was live.
        """
        if self._head is None:
            raise ValueError("Cannot push a level without any signature blocks")
        for ctx in self.arena.level(self._head):
            if _is_live(ctx):
                verifier.initialise_verification(ctx, preamble)

        head = self.arena[self._head]
        head.child = self.root
        self.root = head.handle
        self._head = None
        self.depth += 1
        self._rebuild_live()
        logger.debug(f"Pushed signature level {self.depth} (head {head.location})")

    def pop(self) -> Optional[int]:
        """Close the innermost level and return its head, or None if no level is open."""
        if self.root is None:
            return None
        head = self.arena[self.root]
        self.root = head.child
        head.child = None
        self.depth -= 1
        self._rebuild_live()
        logger.debug(f"Popped signature level (head {head.location}), {self.depth} still open")
        return head.handle

    def feed(self, data: bytes):
        for ctx in self._live:
            ctx.update(data)

    def _rebuild_live(self):
        live = []
        handle = self.root
        while handle is not None:
            live.extend(ctx for ctx in self.arena.level(handle) if _is_live(ctx))
            handle = self.arena[handle].child
        self._live = live
