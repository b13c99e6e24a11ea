# sig_context.py
'''
One SignatureContext per vers:SignatureBlock or vers:LockSignatureBlock.

Contexts live in a ContextArena and refer to each other by integer handle:
  next  - next context at the same nesting level (most recently created first)
  child - head of the level one nesting step further out
  locks - the lock signatures that sign this context's signature value
'''

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes


class ContextKind(Enum):
    ORDINARY = "ordinary"
    LOCK = "lock"


class ContextState(Enum):
    UNDER_CONSTRUCTION = "under_construction"
    PENDING = "pending"
    FAILED_SETUP = "failed_setup"
    FINALIZED = "finalized"


@dataclass
class SignatureContext:
    handle: int
    kind: ContextKind
    active: bool = True
    block_id: Optional[str] = None
    algorithm_id: Optional[str] = None
    signature_value: Optional[str] = None
    certificate_chains: List[List[str]] = field(default_factory=list)

    locks: List[int] = field(default_factory=list)
    next: Optional[int] = None
    child: Optional[int] = None

    state: ContextState = ContextState.UNDER_CONSTRUCTION

    # live verification state, set up when the block closes
    signature_algorithm: Optional[str] = None
    digest_algorithm: Optional[str] = None
    hash_algorithm: Optional[hashes.HashAlgorithm] = None
    digest: Optional[hashes.Hash] = None
    certificate: Optional[x509.Certificate] = None
    public_key: Any = None

    @property
    def is_lock(self) -> bool:
        return self.kind is ContextKind.LOCK

    @property
    def location(self) -> str:
        if self.is_lock:
            return f'Lock Signature (signs vers:Signature "{self.block_id}")'
        if self.block_id is not None:
            return f'Signature (vers:id="{self.block_id}")'
        return "Signature (without vers:id)"

    # --- populated in document order while the block is open ---

    def _require_open(self, what: str):
        if self.state is not ContextState.UNDER_CONSTRUCTION:
            raise ValueError(f"Cannot set {what} on {self.location}: block already closed ({self.state.value})")

    def set_id(self, block_id: str):
        self._require_open("vers:id")
        self.block_id = block_id

    def set_algorithm(self, algorithm_id: str):
        self._require_open("signature algorithm")
        self.algorithm_id = algorithm_id

    def set_signature(self, signature_value: str):
        self._require_open("signature")
        self.signature_value = signature_value

    def add_certificate_chain(self, chain: List[str]):
        self._require_open("certificate chain")
        self.certificate_chains.append(list(chain))

    def close(self):
        self._require_open("closing state")
        self.state = ContextState.PENDING

    # --- digest ---

    def update(self, data: bytes):
        if self.digest is not None:
            self.digest.update(data)

    def finish_digest(self) -> bytes:
        """One-way: the digest cannot be extended or finished twice afterwards."""
        assert self.digest is not None
        self.state = ContextState.FINALIZED
        return self.digest.finalize()

    def describe(self) -> str:
        lines = []
        if self.is_lock:
            lines.append(f"Lock Signature Block (signs={self.block_id!r})")
        else:
            lines.append(f"Signature Block (id={self.block_id!r})")
        lines.append(f"  State: {self.state.value}, active: {self.active}")
        lines.append(f"  Signature Algorithm: {self.algorithm_id!r}")
        lines.append(f"  Signature: {self.signature_value!r}")
        if not self.certificate_chains:
            lines.append("  No certificate chains present")
        for i, chain in enumerate(self.certificate_chains):
            lines.append(f"  Certificate chain ({i}): {len(chain)} certificate(s)")
        lines.append(f"  Links: locks={self.locks} next={self.next} child={self.child}")
        return "\n".join(lines)


class ContextArena:
    """Owns every context of one verification run."""

    def __init__(self):
        self._contexts: List[SignatureContext] = []

    def new(self, kind: ContextKind, active: bool = True) -> SignatureContext:
        ctx = SignatureContext(handle=len(self._contexts), kind=kind, active=active)
        self._contexts.append(ctx)
        return ctx

    def __getitem__(self, handle: int) -> SignatureContext:
        return self._contexts[handle]

    def __len__(self) -> int:
        return len(self._contexts)

    def level(self, head: Optional[int]) -> Iterator[SignatureContext]:
        """Walk the `next` chain of a level, starting at its head."""
        handle = head
        while handle is not None:
            ctx = self._contexts[handle]
            yield ctx
            handle = ctx.next
