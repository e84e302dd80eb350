"""Best-effort side effects.

Steps that must never abort an ingestion (item insert, inventory, email) run
through ``run_best_effort``: the outcome is logged and returned as a
``SideEffectResult`` instead of being raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class SideEffectResult:
    """Outcome of one best-effort step."""
    name: str
    ok: bool
    error: str = ""
    value: Any = None


def run_best_effort(name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> SideEffectResult:
    """Call ``fn`` and capture any exception as a failed result."""
    try:
        value = fn(*args, **kwargs)
    except Exception as e:
        logger.warning("Side effect %s failed: %s", name, e, exc_info=True)
        return SideEffectResult(name=name, ok=False, error=str(e))
    return SideEffectResult(name=name, ok=True, value=value)


def delivery_outcome(effect: SideEffectResult) -> SideEffectResult:
    """Mark an email step failed when the provider rejected the message."""
    sent = effect.value
    if effect.ok and sent is not None and not sent.success:
        return SideEffectResult(name=effect.name, ok=False, error=sent.error, value=sent)
    return effect
