"""
idp_gateway/audit.py

Tamper-evident gateway audit log.

One JSON object per line (JSONL). Each event is hash-chained:

  H_0 = "0"*64
  H_n = SHA3-256( bytes.fromhex(H_{n-1}) || canonical_json(event_without_hash_fields) )

Each line stores:
  - prev_hash: hex string (64 chars)
  - hash:      hex string (64 chars)

Events never contain raw key material: public keys are recorded as
length + SHA3-256 only.
"""

from __future__ import annotations

import json
import os
import time
import hashlib
from pathlib import Path
from typing import Any, Dict, Optional

# Linux file lock (works in Docker/Linux)
import fcntl


GENESIS_HASH = "0" * 64  # 32 bytes hex

LOG_NAME = "gateway_audit.jsonl"
STATE_NAME = "gateway_audit.state"
LOCK_NAME = "gateway_audit.lock"


# -----------------------------------------------------------------------------
# Canonical JSON
# -----------------------------------------------------------------------------
def _canonical_json_bytes(obj: Dict[str, Any]) -> bytes:
    """
    Deterministic JSON bytes for hashing and logging:
    - sorted keys
    - no whitespace
    - UTF-8
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _sha3_256_hex(data: bytes) -> str:
    return hashlib.sha3_256(data).hexdigest()


# -----------------------------------------------------------------------------
# Event fields
# -----------------------------------------------------------------------------
def build_common(
    *,
    operation: str,
    individual_id: Optional[str] = None,
    public_key: Optional[str] = None,
    request_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Common audit fields. Keep this "boring" and stable.
    """
    out: Dict[str, Any] = {
        "ts": int(time.time()),
        "operation": operation,
    }

    if individual_id:
        out["individual_id"] = individual_id
    if public_key:
        raw = public_key.encode("utf-8")
        out["public_key_len"] = len(raw)
        out["public_key_sha3_256"] = _sha3_256_hex(raw)
    if request_ip:
        out["request_ip"] = request_ip
    if user_agent:
        out["user_agent"] = user_agent[:200]

    return out


# -----------------------------------------------------------------------------
# Log
# -----------------------------------------------------------------------------
class AuditLog:
    def __init__(self, directory: Path | str, *, enabled: bool = True):
        self.directory = Path(directory)
        self.enabled = enabled

    @property
    def log_path(self) -> Path:
        return self.directory / LOG_NAME

    @property
    def state_path(self) -> Path:
        return self.directory / STATE_NAME

    @property
    def lock_path(self) -> Path:
        return self.directory / LOCK_NAME

    def _read_last_hash_unlocked(self) -> str:
        """
        Read last hash from the state file. Caller must hold lock.
        Returns GENESIS_HASH if state missing/empty.
        """
        try:
            if not self.state_path.exists():
                return GENESIS_HASH
            s = self.state_path.read_text(encoding="utf-8").strip()
            if len(s) != 64:
                return GENESIS_HASH
            bytes.fromhex(s)
            return s.lower()
        except (OSError, ValueError):
            return GENESIS_HASH

    def append_event(self, event: Dict[str, Any]) -> Optional[str]:
        """
        Append one event with hash chaining and return its hash.

        - locks the lock file
        - reads prev hash
        - computes next hash over the canonical event (without hash fields)
        - writes the JSONL line containing prev_hash + hash
        - updates the state file
        """
        if not self.enabled:
            return None

        self.directory.mkdir(parents=True, exist_ok=True)

        # Lock a dedicated file so it works even if log/state don't exist yet.
        with open(self.lock_path, "a+", encoding="utf-8") as lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                prev_hash = self._read_last_hash_unlocked()

                # Never allow callers to inject their own chain fields.
                e = dict(event)
                e.pop("prev_hash", None)
                e.pop("hash", None)

                next_hash = _sha3_256_hex(bytes.fromhex(prev_hash) + _canonical_json_bytes(e))

                stored = dict(e)
                stored["prev_hash"] = prev_hash
                stored["hash"] = next_hash

                with open(self.log_path, "ab") as f:
                    f.write(_canonical_json_bytes(stored) + b"\n")
                    f.flush()
                    os.fsync(f.fileno())

                self.state_path.write_text(next_hash + "\n", encoding="utf-8")
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

        return next_hash


def verify_log_chain(path: Path) -> bool:
    """
    Verify the hash chain of an audit log file.
    Returns True if valid (or absent), False otherwise.
    """
    if not path.exists():
        return True

    prev = GENESIS_HASH
    try:
        with open(path, "rb") as f:
            for raw_line in f:
                raw_line = raw_line.strip()
                if not raw_line:
                    continue
                obj = json.loads(raw_line.decode("utf-8"))

                if obj.get("prev_hash") != prev:
                    return False

                # recompute from event excluding hash fields
                obj2 = dict(obj)
                obj2.pop("prev_hash", None)
                line_hash = obj2.pop("hash", None)

                expect = _sha3_256_hex(bytes.fromhex(prev) + _canonical_json_bytes(obj2))
                if expect != line_hash:
                    return False

                prev = line_hash

        return True
    except (OSError, ValueError, AttributeError):
        return False
