"""Identities of rated players."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

Combination = Dict[str, Any]

PARAMETER = "parameter"
COMBINATION = "combination"
DIMENSIONS = (PARAMETER, COMBINATION)


def combination_key(combination: Mapping[str, Any]) -> str:
    """Canonical identity of a combination, e.g. ``model=gpt-4,temperature=0.5``."""
    return ",".join(f"{name}={value}" for name, value in combination.items())


def parameter_discriminator(name: str, value: Any) -> str:
    return f"{name}:{value}"


@dataclass(frozen=True)
class RatingKey:
    """Storage identity of a rated player.

    Equality and hashing use only ``(dimension, discriminator)``; the subject
    fields keep the original values around for top-N queries.
    """

    dimension: str
    discriminator: str
    parameter_name: Optional[str] = field(default=None, compare=False)
    parameter_value: Any = field(default=None, compare=False)
    combination: Optional[Combination] = field(default=None, compare=False)

    @classmethod
    def for_parameter(cls, name: str, value: Any) -> "RatingKey":
        return cls(
            dimension=PARAMETER,
            discriminator=parameter_discriminator(name, value),
            parameter_name=name,
            parameter_value=value,
        )

    @classmethod
    def for_combination(cls, combination: Mapping[str, Any]) -> "RatingKey":
        return cls(
            dimension=COMBINATION,
            discriminator=combination_key(combination),
            combination=dict(combination),
        )
