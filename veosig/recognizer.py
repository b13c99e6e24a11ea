# recognizer.py
'''
Table driven scanner that finds the signature markers of a VEO.

The VEO is never parsed as XML: a parser would not give back the exact byte
sequence the producer signed. Instead the scanner is fed one retained
(non-whitespace) byte at a time and recognises a fixed set of literal tags.

Each state is either
  - sequential: match a literal one byte at a time. On a full match, emit the
    state's action and go to the 'matched' state. On a mismatch, go to the
    'failed' state, or (skip states) drop the partial match and keep going.
  - choice: look at exactly one byte and branch on it.
A recording state keeps every byte it consumes. The text handed to the action
is the recording minus its last byte, which is the delimiter that ended it.
'''

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class StateName(Enum):
    # '<vers:SignatureBlock', '<vers:LockSignatureBlock', '<vers:SignedObject' or '</vers:SignedObject>'
    TAG_OPEN = "tag_open"
    TAG_KIND = "tag_kind"
    VERS_PREFIX = "vers_prefix"
    SIGNATURE_OR_LOCK = "signature_or_lock"
    SIGN = "sign"
    SIGNATURE_OR_SIGNED = "signature_or_signed"
    SIGNATURE_BLOCK = "signature_block"
    BLOCK_ID_OR_CLOSE = "block_id_or_close"
    BLOCK_ID_ATTR = "block_id_attr"
    BLOCK_ID_VALUE = "block_id_value"
    LOCK_BLOCK = "lock_block"
    SIGNS_ATTR = "signs_attr"
    SIGNS_VALUE = "signs_value"
    # contents of a signature block or lock signature block
    ALGORITHM_START = "algorithm_start"
    ALGORITHM_VALUE = "algorithm_value"
    SIGNATURE_START = "signature_start"
    SIGNATURE_VALUE = "signature_value"
    CHAIN_OPEN = "chain_open"
    CHAIN_OR_BLOCK_END = "chain_or_block_end"
    CERTIFICATE_BLOCK = "certificate_block"
    CERT_OPEN = "cert_open"
    CERT_OR_CHAIN_END = "cert_or_chain_end"
    CERT_PREFIX = "cert_prefix"
    CERT_KIND = "cert_kind"
    CERTIFICATE = "certificate"
    SIGNERS_CERTIFICATE = "signers_certificate"
    CERT_VALUE = "cert_value"
    # vers:SignedObject start and end tags
    SIGNED_OBJECT = "signed_object"
    SIGNED_OBJECT_END = "signed_object_end"


class Action(Enum):
    SIGNATURE_BLOCK_START = "signature_block_start"
    LOCK_BLOCK_START = "lock_block_start"
    BLOCK_ID = "block_id"
    SIGNS_BLOCK_ID = "signs_block_id"
    ALGORITHM_ID = "algorithm_id"
    SIGNATURE_VALUE = "signature_value"
    CERTIFICATE_BLOCK_START = "certificate_block_start"
    CERTIFICATE = "certificate"
    CERTIFICATE_BLOCK_END = "certificate_block_end"
    BLOCK_END = "block_end"
    SIGNED_OBJECT_START = "signed_object_start"
    SIGNED_OBJECT_END = "signed_object_end"


@dataclass(frozen=True)
class Choice:
    char: int
    next_state: StateName
    action: Optional[Action] = None


@dataclass(frozen=True)
class ScanState:
    name: StateName
    literal: bytes = b""
    on_match: Optional[StateName] = None
    on_fail: StateName = StateName.TAG_OPEN
    recording: bool = False
    skip: bool = False
    action: Optional[Action] = None
    choices: Tuple[Choice, ...] = ()

    @property
    def is_choice(self) -> bool:
        return bool(self.choices)


@dataclass(frozen=True)
class Event:
    action: Action
    text: Optional[str] = None


def _seq(name: StateName, literal: str, on_match: StateName, recording: bool = False,
         skip: bool = False, action: Optional[Action] = None) -> ScanState:
    return ScanState(name=name, literal=literal.encode('ascii'), on_match=on_match,
                     recording=recording, skip=skip, action=action)


def _choice(name: StateName, *options: Tuple) -> ScanState:
    choices = tuple(Choice(ord(opt[0]), *opt[1:]) for opt in options)
    return ScanState(name=name, choices=choices)


def build_transition_table() -> Dict[StateName, ScanState]:
    S, A = StateName, Action
    states = [
        _seq(S.TAG_OPEN, "<", S.TAG_KIND),
        _choice(S.TAG_KIND, ("v", S.VERS_PREFIX), ("/", S.SIGNED_OBJECT_END)),
        _seq(S.VERS_PREFIX, "ers:", S.SIGNATURE_OR_LOCK),
        _choice(S.SIGNATURE_OR_LOCK, ("S", S.SIGN), ("L", S.LOCK_BLOCK)),
        _seq(S.SIGN, "ign", S.SIGNATURE_OR_SIGNED),
        _choice(S.SIGNATURE_OR_SIGNED, ("a", S.SIGNATURE_BLOCK), ("e", S.SIGNED_OBJECT)),
        _seq(S.SIGNATURE_BLOCK, "tureBlock", S.BLOCK_ID_OR_CLOSE, action=A.SIGNATURE_BLOCK_START),
        _choice(S.BLOCK_ID_OR_CLOSE, ("v", S.BLOCK_ID_ATTR), (">", S.ALGORITHM_START)),
        _seq(S.BLOCK_ID_ATTR, 'ers:id="', S.BLOCK_ID_VALUE, skip=True),
        _seq(S.BLOCK_ID_VALUE, '"', S.ALGORITHM_START, recording=True, skip=True, action=A.BLOCK_ID),

        _seq(S.LOCK_BLOCK, "ockSignatureBlock", S.SIGNS_ATTR, action=A.LOCK_BLOCK_START),
        _seq(S.SIGNS_ATTR, 'vers:signsSignatureBlock="', S.SIGNS_VALUE, skip=True),
        _seq(S.SIGNS_VALUE, '"', S.ALGORITHM_START, recording=True, skip=True, action=A.SIGNS_BLOCK_ID),

        _seq(S.ALGORITHM_START, "<vers:SignatureAlgorithmIdentifier>", S.ALGORITHM_VALUE, skip=True),
        _seq(S.ALGORITHM_VALUE, "<", S.SIGNATURE_START, recording=True, skip=True, action=A.ALGORITHM_ID),
        _seq(S.SIGNATURE_START, "<vers:Signature>", S.SIGNATURE_VALUE, skip=True),
        _seq(S.SIGNATURE_VALUE, "<", S.CHAIN_OPEN, recording=True, skip=True, action=A.SIGNATURE_VALUE),
        _seq(S.CHAIN_OPEN, "<", S.CHAIN_OR_BLOCK_END, skip=True),
        _choice(S.CHAIN_OR_BLOCK_END,
                ("v", S.CERTIFICATE_BLOCK, A.CERTIFICATE_BLOCK_START),
                ("/", S.TAG_OPEN, A.BLOCK_END)),
        _seq(S.CERTIFICATE_BLOCK, "ers:CertificateBlock>", S.CERT_OPEN),
        _seq(S.CERT_OPEN, "<", S.CERT_OR_CHAIN_END, skip=True),
        _choice(S.CERT_OR_CHAIN_END,
                ("v", S.CERT_PREFIX),
                ("/", S.CHAIN_OPEN, A.CERTIFICATE_BLOCK_END)),
        _seq(S.CERT_PREFIX, "ers:", S.CERT_KIND),
        _choice(S.CERT_KIND, ("C", S.CERTIFICATE), ("S", S.SIGNERS_CERTIFICATE)),
        _seq(S.CERTIFICATE, "ertificate>", S.CERT_VALUE),
        _seq(S.SIGNERS_CERTIFICATE, "ignersCertificate>", S.CERT_VALUE),
        _seq(S.CERT_VALUE, "<", S.CERT_OPEN, recording=True, skip=True, action=A.CERTIFICATE),

        _seq(S.SIGNED_OBJECT, "dObject", S.TAG_OPEN, action=A.SIGNED_OBJECT_START),
        _seq(S.SIGNED_OBJECT_END, "vers:SignedObject>", S.TAG_OPEN, action=A.SIGNED_OBJECT_END),
    ]

    table = {state.name: state for state in states}
    missing = set(StateName) - set(table)
    if missing:
        raise ValueError(f"Transition table has no entry for: {sorted(m.value for m in missing)}")
    return table


TRANSITIONS: Dict[StateName, ScanState] = build_transition_table()


class TagRecognizer:
    """
    Consumes retained bytes and reports recognised markers as Events.
    Strictly single pass: a byte that breaks a partial match is never re-examined.
    """

    def __init__(self, table: Optional[Dict[StateName, ScanState]] = None):
        self._table = table if table is not None else TRANSITIONS
        self.reset()

    def reset(self):
        self.state = self._table[StateName.TAG_OPEN]
        self._matched = 0
        self._buffer = bytearray()

    def feed(self, byte: int) -> Optional[Event]:
        state = self.state
        if state.recording:
            self._buffer.append(byte)

        if state.is_choice:
            for option in state.choices:
                if option.char == byte:
                    return self._enter(option.next_state, option.action)
            return self._enter(state.on_fail, None)

        if byte == state.literal[self._matched]:
            self._matched += 1
            if self._matched == len(state.literal):
                text = None
                if state.recording:
                    text = bytes(self._buffer[:-1]).decode('latin-1')
                return self._enter(state.on_match, state.action, text)
            return None

        if state.skip:
            self._matched = 0
        else:
            self._enter(state.on_fail, None)
        return None

    def _enter(self, name: StateName, action: Optional[Action],
               text: Optional[str] = None) -> Optional[Event]:
        self.state = self._table[name]
        self._matched = 0
        self._buffer.clear()
        if action is None:
            return None
        return Event(action, text)
