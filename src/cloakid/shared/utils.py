"""
Shared utility functions.
"""
import hashlib
import time
from datetime import datetime, timezone
from typing import Optional


def project_id(name: str) -> str:
    """
    Derive a content-addressed project identifier from a readable name.

    Args:
        name: Human readable project name, e.g. "TestProject"

    Returns:
        0x-prefixed 32-byte hex digest
    """
    return "0x" + hashlib.sha3_256(name.encode("utf-8")).hexdigest()


def utc_year(timestamp: int) -> int:
    """Calendar year (UTC) of a unix timestamp."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).year


def proof_seed(principal: str, project: str, timestamp: int) -> int:
    """
    Plaintext seed for a proof token.

    Hashes (principal, project, timestamp) into an unsigned 256-bit integer.
    """
    payload = f"{principal}|{project}|{timestamp}".encode("utf-8")
    return int.from_bytes(hashlib.sha3_256(payload).digest(), "big")


def unix_now() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self.start_time

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.elapsed is None:
            if self.start_time is not None:
                return (time.perf_counter() - self.start_time) * 1000
            return 0.0
        return self.elapsed * 1000
