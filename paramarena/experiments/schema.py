"""Experiment configuration schemas."""
from __future__ import annotations

import importlib
import itertools
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from paramarena.ratings.keys import Combination, parameter_discriminator

_RESERVED_NAME_CHARS = (":", "=", ",")


def resolve_callable(path: str) -> Callable[..., Any]:
    """Import ``package.module:attribute`` and return the attribute."""
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Expected 'module:attribute', got '{path}'")
    module = importlib.import_module(module_name)
    target = module
    for part in attribute.split("."):
        target = getattr(target, part)
    if not callable(target):
        raise ValueError(f"'{path}' does not resolve to a callable")
    return target


class ParameterGrid(BaseModel):
    """Named candidate values to sweep over (name -> list of values)."""

    parameters: Dict[str, List[Any]] = Field(
        default_factory=dict, description="Parameters to sweep over, in sweep order"
    )

    @field_validator("parameters")
    @classmethod
    def validate_parameters(cls, value: Dict[str, List[Any]]) -> Dict[str, List[Any]]:
        for name in value:
            if not name:
                raise ValueError("parameter names must be non-empty")
            if any(ch in name for ch in _RESERVED_NAME_CHARS):
                raise ValueError(
                    f"parameter name '{name}' must not contain any of {list(_RESERVED_NAME_CHARS)}"
                )
            seen = set()
            for candidate in value[name]:
                discriminator = parameter_discriminator(name, candidate)
                if discriminator in seen:
                    raise ValueError(
                        f"parameter '{name}' lists value '{candidate}' more than once"
                    )
                seen.add(discriminator)
        return value

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ParameterGrid":
        return cls(parameters={name: list(values) for name, values in mapping.items()})

    @property
    def names(self) -> List[str]:
        return list(self.parameters.keys())

    @property
    def size(self) -> int:
        """Number of combinations the grid expands to."""
        total = 1
        for values in self.parameters.values():
            total *= len(values)
        return total

    def generate_combinations(self) -> List[Combination]:
        """Expand the grid into concrete combinations.

        The leftmost parameter varies slowest. A grid without parameters yields a
        single empty combination; a parameter without candidate values yields no
        combinations at all.
        """
        param_names = self.names
        param_values = [self.parameters[k] for k in param_names]
        return [dict(zip(param_names, combo)) for combo in itertools.product(*param_values)]


def generate_combinations(grid: ParameterGrid | Mapping[str, Any]) -> List[Combination]:
    if not isinstance(grid, ParameterGrid):
        grid = ParameterGrid.from_mapping(grid)
    return grid.generate_combinations()


PolicyType = Literal["string", "numeric", "custom"]


class EvaluationPolicy(BaseModel):
    """How two results are compared against each other."""

    type: PolicyType = Field(..., description="Evaluation kind: 'string', 'numeric' or 'custom'")
    higher_is_better: bool = Field(
        default=True, description="Prefer larger values (or longer strings)"
    )
    error_penalty: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Confidence of the loss recorded against a failed result",
    )
    metric: Optional[str] = Field(
        default=None, description="Dot path of the value to compare inside each result"
    )
    custom_comparator: Optional[Callable[[Any, Any], str]] = Field(
        default=None, description="Comparator returning 'A', 'B' or 'draw' (custom only)"
    )

    @model_validator(mode="after")
    def validate_comparator(self) -> "EvaluationPolicy":
        if self.type == "custom" and self.custom_comparator is None:
            raise ValueError("custom evaluation requires a custom_comparator")
        return self


class EvaluationSpec(BaseModel):
    """Evaluation section of an experiment YAML file."""

    type: PolicyType
    higher_is_better: bool = True
    error_penalty: float = Field(default=1.0, ge=0.0, le=1.0)
    metric: Optional[str] = None
    comparator: Optional[str] = Field(
        default=None, description="Comparator as 'module:attribute' (custom only)"
    )

    def to_policy(self) -> EvaluationPolicy:
        comparator = resolve_callable(self.comparator) if self.comparator else None
        return EvaluationPolicy(
            type=self.type,
            higher_is_better=self.higher_is_better,
            error_penalty=self.error_penalty,
            metric=self.metric,
            custom_comparator=comparator,
        )


class ExperimentConfig(BaseModel):
    """Complete experiment configuration."""

    description: str = Field(..., description="Human-readable description of the experiment")
    parameters: Dict[str, List[Any]] = Field(..., description="Parameter grid to sweep")
    target: str = Field(..., description="Target function as 'module:attribute'")
    evaluation: Optional[EvaluationSpec] = Field(
        default=None, description="Evaluation policy; omit to only run the sweep"
    )
    max_concurrency: Optional[int] = Field(
        default=None, ge=1, description="Concurrency bound (uses config default if not specified)"
    )

    @staticmethod
    def from_yaml(path: str | Path) -> "ExperimentConfig":
        """Load experiment config from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return ExperimentConfig(**data)

    @property
    def grid(self) -> ParameterGrid:
        return ParameterGrid(parameters=self.parameters)

    def to_policy(self) -> Optional[EvaluationPolicy]:
        return self.evaluation.to_policy() if self.evaluation else None

    def resolve_target(self) -> Callable[..., Any]:
        return resolve_callable(self.target)

    def validate(self) -> None:
        """Validate the experiment configuration."""
        if self.grid.size == 0:
            raise ValueError("Experiment grid must expand to at least one combination")
