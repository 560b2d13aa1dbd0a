from __future__ import annotations

from devtrail.core.concurrency import ConcurrencyLimiter, cancel_and_wait, gather_or_cancel

__all__ = ["ConcurrencyLimiter", "cancel_and_wait", "gather_or_cancel"]
