"""
Full/compact output selection.

Every tool can render its parsed result in two JSON shapes: the full one and
a compact projection. In auto mode the cheaper one (by estimated tokens) wins.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import math
from typing import Any, Generic, Literal, Protocol, TypeVar

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)

CompactMode = bool | Literal["auto"]


@dataclass(frozen=True)
class CompactionChoice:
    chosen: Literal["full", "compact"]
    full_token_estimate: int
    compact_token_estimate: int


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four UTF-8 bytes, rounded up."""
    return math.ceil(len(text.encode("utf-8")) / 4)


def to_json(value: Any) -> str:
    """Serialization used for both estimates and responses."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def estimate_value_tokens(value: Any) -> int:
    return estimate_tokens(to_json(value))


def decide(full: Any, compact: Any, mode: CompactMode = True) -> CompactionChoice:
    """
    Choose between a full and a compact representation.

    Args:
        full: Full JSON-serializable value
        compact: Compact JSON-serializable value
        mode: True or "auto" to pick the cheaper one, False to force full

    Raises:
        ValueError: For any other mode
    """
    if mode is not True and mode is not False and mode != "auto":
        raise ValueError(f'compact mode must be True, False or "auto", got {mode!r}')

    full_tokens = estimate_value_tokens(full)
    compact_tokens = estimate_value_tokens(compact)

    if mode is False:
        chosen = "full"
    else:
        chosen = "compact" if compact_tokens < full_tokens else "full"

    return CompactionChoice(
        chosen=chosen,
        full_token_estimate=full_tokens,
        compact_token_estimate=compact_tokens,
    )


class Reducer(Protocol[T_contra]):
    """Two projections of one parsed result."""

    def to_full(self, data: T_contra) -> Any: ...

    def to_compact(self, data: T_contra) -> Any: ...


@dataclass(frozen=True)
class FunctionReducer(Generic[T]):
    """Reducer built from two plain functions."""

    full: Any
    compact: Any

    def to_full(self, data: T) -> Any:
        return self.full(data)

    def to_compact(self, data: T) -> Any:
        return self.compact(data)


def compact_output(data: T, reducer: Reducer[T], mode: CompactMode = True) -> tuple[Any, CompactionChoice]:
    """
    Project data through a reducer and keep the cheaper shape.

    Returns:
        (chosen value, CompactionChoice)
    """
    full = reducer.to_full(data)
    compact = reducer.to_compact(data)
    choice = decide(full, compact, mode)
    return (compact if choice.chosen == "compact" else full), choice
