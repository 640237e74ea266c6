#!/usr/bin/env python3
"""
verify_audit.py: Verify the gateway's tamper-evident audit log (JSONL).

Checks:
- every line is a JSON object
- hash chaining: prev_hash links to the previous line's hash, and
  hash = SHA3-256( bytes.fromhex(prev_hash) || canonical_json(event_without_hash_fields) )
- optional state file holds the last hash

Exit codes:
- 0: OK
- 1: Verification failed
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from idp_gateway.audit import GENESIS_HASH, _canonical_json_bytes, _sha3_256_hex


@dataclass
class VerifyResult:
    ok: bool
    lines: int
    last_hash: Optional[str]
    message: str


def _is_hex64(s: Any) -> bool:
    if not isinstance(s, str) or len(s) != 64:
        return False
    try:
        int(s, 16)
        return True
    except ValueError:
        return False


def _iter_jsonl(path: Path) -> Iterable[Tuple[int, Dict[str, Any]]]:
    """
    Yields: (line_number starting at 1, parsed_object)
    """
    with path.open("r", encoding="utf-8") as f:
        for idx, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except ValueError as e:
                raise ValueError(f"{path}:{idx}: invalid JSON: {e}") from e
            if not isinstance(obj, dict):
                raise ValueError(f"{path}:{idx}: JSON root must be object/dict")
            yield idx, obj


def compute_event_hash(prev_hash: str, event: Dict[str, Any]) -> str:
    tmp = dict(event)
    tmp.pop("prev_hash", None)
    tmp.pop("hash", None)
    return _sha3_256_hex(bytes.fromhex(prev_hash) + _canonical_json_bytes(tmp))


def verify_audit(jsonl_path: Path, state_path: Optional[Path] = None) -> VerifyResult:
    if not jsonl_path.exists():
        return VerifyResult(False, 0, None, f"Log not found: {jsonl_path}")

    lines = 0
    prev = GENESIS_HASH
    last_hash: Optional[str] = None

    for lineno, event in _iter_jsonl(jsonl_path):
        lines += 1

        prev_claimed = event.get("prev_hash")
        hash_claimed = event.get("hash")

        if not _is_hex64(prev_claimed) or not _is_hex64(hash_claimed):
            return VerifyResult(
                False, lines, last_hash,
                f"{jsonl_path}:{lineno}: prev_hash/hash missing or not 64-hex"
            )

        if prev_claimed != prev:
            return VerifyResult(
                False, lines, last_hash,
                f"{jsonl_path}:{lineno}: prev_hash mismatch: expected {prev} got {prev_claimed}"
            )

        recomputed = compute_event_hash(prev, event)
        if hash_claimed != recomputed:
            return VerifyResult(
                False, lines, last_hash,
                f"{jsonl_path}:{lineno}: hash mismatch: expected {recomputed} got {hash_claimed}"
            )

        prev = hash_claimed
        last_hash = hash_claimed

    if state_path is not None:
        if not state_path.exists():
            return VerifyResult(False, lines, last_hash, f"State file not found: {state_path}")

        state_val = state_path.read_text(encoding="utf-8").strip()
        if state_val != (last_hash or ""):
            return VerifyResult(
                False, lines, last_hash,
                f"State mismatch: state={state_val} log_last={last_hash}"
            )

    return VerifyResult(True, lines, last_hash, "OK")


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        description="Verify IdP gateway audit log integrity (hash-chained JSONL)."
    )
    p.add_argument(
        "log",
        type=Path,
        help="Path to audit JSONL file (e.g. audit/gateway_audit.jsonl)",
    )
    p.add_argument(
        "--state",
        type=Path,
        default=None,
        help="Optional state file containing last hash (e.g. audit/gateway_audit.state)",
    )
    args = p.parse_args(argv)

    try:
        res = verify_audit(args.log, state_path=args.state)
    except (OSError, ValueError) as e:
        print(f"FAIL: {e}", file=sys.stderr)
        return 1

    out = sys.stdout if res.ok else sys.stderr
    print("OK" if res.ok else "FAIL", file=out)
    if not res.ok:
        print(res.message, file=out)
    print(f"lines={res.lines}", file=out)
    if res.last_hash:
        print(f"last_hash={res.last_hash}", file=out)
    return 0 if res.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
