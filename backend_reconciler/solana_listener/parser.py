"""
Instruction classifier: jsonParsed transactions to tagged instruction variants.

Every instruction (top-level and inner/CPI) is decoded once into either a
NativeTransfer or an Unclassified variant; transfer predicates only ever look
at the decoded form. Pure functions, no network or store access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
SYSTEM_PROGRAM_NAME = "system"
# Parsed system instruction types that move native lamports between accounts.
NATIVE_TRANSFER_TYPES = frozenset({"transfer", "transferWithSeed"})


@dataclass(frozen=True)
class NativeTransfer:
    """System program transfer of lamports from source to destination."""

    source: str
    destination: str
    lamports: int
    inner: bool = False


@dataclass(frozen=True)
class Unclassified:
    """Any instruction shape that is not a native transfer (kept for visibility)."""

    program: str | None
    kind: str | None
    inner: bool = False


Instruction = Union[NativeTransfer, Unclassified]


def _program_of(raw: dict[str, Any]) -> str | None:
    program = raw.get("program")
    if isinstance(program, str):
        return program
    program_id = raw.get("programId")
    return program_id if isinstance(program_id, str) else None


def _is_system_program(raw: dict[str, Any]) -> bool:
    return raw.get("program") == SYSTEM_PROGRAM_NAME or raw.get("programId") == SYSTEM_PROGRAM_ID


def decode_instruction(raw: Any, *, inner: bool = False) -> Instruction:
    """
    Decode one jsonParsed instruction.

    Anything that is not a parsed system transfer/transferWithSeed with a
    string source, string destination and integer lamports is Unclassified.
    """
    if not isinstance(raw, dict):
        return Unclassified(program=None, kind=None, inner=inner)
    program = _program_of(raw)
    parsed = raw.get("parsed")
    if not isinstance(parsed, dict):
        # Unparsed (raw data) instructions or programs the node cannot parse.
        kind = parsed if isinstance(parsed, str) else None
        return Unclassified(program=program, kind=kind, inner=inner)
    kind = parsed.get("type")
    if not _is_system_program(raw) or kind not in NATIVE_TRANSFER_TYPES:
        return Unclassified(program=program, kind=kind if isinstance(kind, str) else None, inner=inner)
    info = parsed.get("info") or {}
    source = info.get("source")
    destination = info.get("destination")
    lamports = info.get("lamports")
    if (
        not isinstance(source, str)
        or not isinstance(destination, str)
        or isinstance(lamports, bool)
        or not isinstance(lamports, int)
    ):
        return Unclassified(program=program, kind=kind, inner=inner)
    return NativeTransfer(source=source, destination=destination, lamports=lamports, inner=inner)


def extract_instructions(tx: dict[str, Any] | None) -> list[Instruction]:
    """Top-level instructions first, then every inner instruction block in order."""
    if not isinstance(tx, dict):
        return []
    message = (tx.get("transaction") or {}).get("message") or {}
    meta = tx.get("meta") or {}
    decoded: list[Instruction] = [
        decode_instruction(ix) for ix in (message.get("instructions") or [])
    ]
    for block in meta.get("innerInstructions") or []:
        if not isinstance(block, dict):
            continue
        decoded.extend(
            decode_instruction(ix, inner=True) for ix in (block.get("instructions") or [])
        )
    return decoded


def is_transfer_into(ix: Instruction, target: str) -> bool:
    return isinstance(ix, NativeTransfer) and ix.lamports > 0 and ix.destination == target


def is_transfer_out_of(ix: Instruction, target: str) -> bool:
    return isinstance(ix, NativeTransfer) and ix.lamports > 0 and ix.source == target


def is_failed(tx: dict[str, Any] | None) -> bool:
    """True when the transaction has no meta or meta.err is set (failed on-chain)."""
    if not isinstance(tx, dict):
        return True
    meta = tx.get("meta")
    if not isinstance(meta, dict):
        return True
    return meta.get("err") is not None
