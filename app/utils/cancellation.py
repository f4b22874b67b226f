"""Cooperative cancellation helpers for long-running polling loops."""

from __future__ import annotations

import asyncio

from app.domain.exceptions import PipelineCancelledError


def raise_if_cancelled(cancel_event: asyncio.Event | None, what: str = "Processing") -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PipelineCancelledError(f"{what} cancelled by operator")


async def wait_or_cancel(cancel_event: asyncio.Event | None, seconds: float) -> None:
    """Sleep for `seconds`, waking early and raising if the event gets set."""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise PipelineCancelledError("Processing cancelled by operator")


__all__ = ["raise_if_cancelled", "wait_or_cancel"]
