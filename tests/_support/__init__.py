"""
Test support utilities for lockstep tests.

Deterministic time and scripted dependency failures, so TTL, cooldown
and backoff behaviour can be asserted without real sleeps.
"""

from tests._support.clock import FakeClock
from tests._support.fault_injection import FlakyAppendClient, RecordingAppendClient
from tests._support.rows import make_rows

__all__ = ["FakeClock", "FlakyAppendClient", "RecordingAppendClient", "make_rows"]
