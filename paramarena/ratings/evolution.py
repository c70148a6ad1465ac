"""Suggest, evolve and export configurations built from the best-rated parameter values."""
from __future__ import annotations

import json
import logging
import random
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import yaml

from paramarena import __version__
from paramarena.config import EvolutionDefaults
from paramarena.data_access.base import RatingStore
from paramarena.experiments.schema import ParameterGrid
from paramarena.ratings.keys import Combination, RatingKey, combination_key

from .elo import DEFAULT_ELO_RATING

logger = logging.getLogger(__name__)

PARAMETER_WEIGHT = 0.6
COMBINATION_WEIGHT = 0.4

TOURNAMENT_SIZE = 3
CONVERGENCE_THRESHOLD = 10.0
CONVERGENCE_GENERATIONS = 3
MUTATION_CANDIDATES = 10
RESULT_COUNT = 5

EXPORT_FORMATS = ("json", "yaml", "env", "typescript")


def suggestion_confidence(score: float) -> float:
    """Map a blended rating onto a confidence in [0.1, 0.95]."""
    return min(0.95, max(0.1, (score - 1000) / 400))


@dataclass
class SuggestedConfiguration:
    combination: Combination
    score: float
    generation: int = 0

    @property
    def confidence(self) -> float:
        return suggestion_confidence(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combination": self.combination,
            "score": self.score,
            "confidence": self.confidence,
            "generation": self.generation,
        }


@dataclass
class EvolutionResult:
    optimal_configurations: List[SuggestedConfiguration] = field(default_factory=list)
    generations_run: int = 0
    convergence_reached: bool = False
    average_rating: float = 0.0


def suggest_configurations(
    store: RatingStore,
    parameter_names: Sequence[str],
    limit: int = 5,
    per_parameter: int = 10,
    initial_rating: float = DEFAULT_ELO_RATING,
) -> List[SuggestedConfiguration]:
    """Rank candidate configurations by accumulated ratings.

    Candidates are the cartesian product of the top ``per_parameter`` values of
    each parameter. Each candidate scores 0.6 times the mean rating of its values
    plus 0.4 times its own combination rating (``initial_rating`` when it was
    never played). Parameters without any ratings are left out.
    """
    top_values: Dict[str, Dict[str, float]] = {}
    grid: Dict[str, List[Any]] = {}
    for name in parameter_names:
        ratings = store.get_top_parameters_by_type(name, per_parameter)
        if not ratings:
            logger.warning("No ratings stored for parameter '%s'; skipping", name)
            continue
        grid[name] = [r.parameter_value for r in ratings]
        top_values[name] = {
            RatingKey.for_parameter(name, r.parameter_value).discriminator: r.rating.rating
            for r in ratings
        }

    if not grid:
        return []

    suggestions = []
    for combination in ParameterGrid.from_mapping(grid).generate_combinations():
        parameter_ratings = [
            top_values[name][RatingKey.for_parameter(name, value).discriminator]
            for name, value in combination.items()
        ]
        parameter_score = sum(parameter_ratings) / len(parameter_ratings)
        stored = store.get_rating(RatingKey.for_combination(combination))
        combination_score = stored.rating if stored is not None else initial_rating
        score = PARAMETER_WEIGHT * parameter_score + COMBINATION_WEIGHT * combination_score
        suggestions.append(SuggestedConfiguration(combination, score))

    suggestions.sort(key=lambda s: s.score, reverse=True)
    logger.info("Scored %d candidate configurations", len(suggestions))
    return suggestions[:limit]


class EvolutionEngine:
    """Genetic search over configurations, with stored combination ratings as fitness.

    Each generation keeps the elite, then fills the population with crossover
    children of tournament-selected parents or with mutations that swap in one
    of the top-rated values of a parameter. The search stops early once the best
    fitness has moved by less than 10 points for 3 generations in a row.
    """

    def __init__(
        self,
        store: RatingStore,
        settings: Optional[EvolutionDefaults] = None,
        initial_rating: float = DEFAULT_ELO_RATING,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.settings = settings or EvolutionDefaults()
        self.initial_rating = initial_rating
        self.rng = rng or random.Random()

    def fitness(self, combination: Combination) -> float:
        stored = self.store.get_rating(RatingKey.for_combination(combination))
        return stored.rating if stored is not None else self.initial_rating

    def evaluate_population(self, population: Sequence[Combination]) -> List[SuggestedConfiguration]:
        evaluated = [SuggestedConfiguration(dict(c), self.fitness(c)) for c in population]
        evaluated.sort(key=lambda s: s.score, reverse=True)
        return evaluated

    def select_parent(self, evaluated: Sequence[SuggestedConfiguration]) -> SuggestedConfiguration:
        """Tournament selection: the fittest of up to 3 random picks."""
        size = min(TOURNAMENT_SIZE, len(evaluated))
        tournament = [evaluated[self.rng.randrange(len(evaluated))] for _ in range(size)]
        return max(tournament, key=lambda s: s.score)

    def crossover(self, parent_a: Combination, parent_b: Combination) -> Combination:
        child: Combination = {}
        for name in list(dict.fromkeys([*parent_a, *parent_b])):
            first, second = (parent_a, parent_b) if self.rng.random() < 0.5 else (parent_b, parent_a)
            child[name] = first[name] if name in first else second[name]
        return child

    def mutate(self, combination: Combination, alternatives: Mapping[str, List[Any]]) -> Combination:
        mutated = dict(combination)
        for name, values in alternatives.items():
            if values and self.rng.random() < self.settings.mutation_rate:
                mutated[name] = self.rng.choice(values)
        return mutated

    def evolve_configurations(
        self,
        initial_population: Sequence[Combination],
        parameter_names: Sequence[str],
    ) -> EvolutionResult:
        """Evolve a population of configurations.

        Args:
            initial_population: Starting combinations; topped up with rating-based
                suggestions when smaller than the population size
            parameter_names: Parameters that mutation may change

        Returns:
            EvolutionResult with the best distinct configurations of the final population

        Raises:
            ValueError: If there is nothing to evolve
        """
        settings = self.settings
        population = [dict(c) for c in initial_population]
        if len(population) < settings.population_size:
            known = {combination_key(c) for c in population}
            candidates = suggest_configurations(
                self.store,
                parameter_names,
                limit=settings.population_size,
                initial_rating=self.initial_rating,
            )
            for suggestion in candidates:
                if len(population) >= settings.population_size:
                    break
                if combination_key(suggestion.combination) not in known:
                    population.append(dict(suggestion.combination))
        if not population:
            raise ValueError("Nothing to evolve: empty initial population and no stored ratings")

        alternatives = {
            name: [r.parameter_value for r in self.store.get_top_parameters_by_type(name, MUTATION_CANDIDATES)]
            for name in parameter_names
        }

        logger.info(
            "Evolving %d configurations for up to %d generations",
            len(population),
            settings.max_generations,
        )
        previous_best = 0.0
        stable = 0
        generations_run = 0
        for generation in range(settings.max_generations):
            generations_run = generation + 1
            evaluated = self.evaluate_population(population)
            best = evaluated[0].score
            stable = stable + 1 if abs(best - previous_best) < CONVERGENCE_THRESHOLD else 0
            if stable >= CONVERGENCE_GENERATIONS:
                logger.info("Converged after %d generations (best %.1f)", generations_run, best)
                break
            previous_best = best

            next_population = [s.combination for s in evaluated[: settings.elite_count]]
            while len(next_population) < settings.population_size:
                if self.rng.random() < settings.crossover_rate:
                    parent_a = self.select_parent(evaluated)
                    parent_b = self.select_parent(evaluated)
                    next_population.append(self.crossover(parent_a.combination, parent_b.combination))
                else:
                    parent = self.select_parent(evaluated)
                    next_population.append(self.mutate(parent.combination, alternatives))
            population = next_population

        final = self.evaluate_population(population)
        average = sum(s.score for s in final) / len(final)

        best_configurations: List[SuggestedConfiguration] = []
        seen = set()
        for suggestion in final:
            key = combination_key(suggestion.combination)
            if key in seen:
                continue
            seen.add(key)
            suggestion.generation = generations_run
            best_configurations.append(suggestion)
            if len(best_configurations) == RESULT_COUNT:
                break

        return EvolutionResult(
            optimal_configurations=best_configurations,
            generations_run=generations_run,
            convergence_reached=stable >= CONVERGENCE_GENERATIONS,
            average_rating=average,
        )


def _env_name(name: str) -> str:
    return re.sub(r"[^A-Z0-9]", "_", name.upper())


def _env_lines(config: Mapping[str, Any], prefix: str = "") -> List[str]:
    lines = []
    for name, value in config.items():
        if isinstance(value, Mapping):
            lines.extend(_env_lines(value, f"{prefix}{name}_"))
        else:
            lines.append(f"{_env_name(prefix + name)}={json.dumps(value, default=str)}")
    return lines


def _metadata() -> Dict[str, str]:
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "source": "paramarena",
        "version": __version__,
    }


def format_configuration(config: Combination, format: str = "json", include_metadata: bool = False) -> str:
    """Render a configuration as json, yaml, env or typescript.

    With ``include_metadata`` json output gains a ``_metadata`` object and yaml
    and typescript output start with a generated-by comment. env output has no
    metadata; nested mappings are flattened into prefixed names.
    """
    if format == "json":
        output = dict(config)
        if include_metadata:
            output["_metadata"] = _metadata()
        return json.dumps(output, indent=2, default=str)

    header = ""
    if include_metadata:
        meta = _metadata()
        header = f"Generated by paramarena {meta['version']}\nGenerated at: {meta['generated_at']}\n"

    if format == "yaml":
        comments = "".join(f"# {line}\n" for line in header.splitlines())
        return (comments + "\n" if comments else "") + yaml.safe_dump(dict(config), sort_keys=False)
    if format == "env":
        return "\n".join(_env_lines(config)) + "\n"
    if format == "typescript":
        comments = "".join(f"// {line}\n" for line in header.splitlines())
        body = json.dumps(dict(config), indent=2, default=str)
        return (
            (comments + "\n" if comments else "")
            + f"export const config = {body} as const;\n\n"
            + "export type Config = typeof config;\n"
        )
    raise ValueError(f"Unsupported format: {format}")


def export_configuration(
    config: Combination, path: str | Path, format: str = "json", include_metadata: bool = False
) -> Path:
    """Write a configuration to ``path`` in one of EXPORT_FORMATS."""
    text = format_configuration(config, format, include_metadata)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("Configuration exported to %s", path)
    return path


_SCHEMA_TYPES: Dict[str, tuple] = {
    "str": (str,),
    "int": (int,),
    "float": (float,),
    "number": (int, float),
    "bool": (bool,),
    "list": (list, tuple),
    "dict": (dict,),
}


def validate_configuration(config: Mapping[str, Any], schema: Mapping[str, str]) -> None:
    """Check that every schema key is present with the named type.

    Type names are str, int, float, number, bool, list and dict. Booleans never
    satisfy int, float or number.

    Raises:
        ValueError: On a missing key, a wrong type or an unknown type name
    """
    for key, expected in schema.items():
        if key not in config:
            raise ValueError(f"Missing required configuration key: {key}")
        if expected not in _SCHEMA_TYPES:
            raise ValueError(f"Unknown type '{expected}' for {key} in validation schema")
        value = config[key]
        matches = isinstance(value, _SCHEMA_TYPES[expected])
        if isinstance(value, bool) and expected != "bool":
            matches = False
        if not matches:
            raise ValueError(
                f"Invalid type for {key}: expected {expected}, got {type(value).__name__}"
            )


def deploy_configuration(
    config: Combination,
    config_path: str | Path,
    format: str = "json",
    backup_path: Optional[str] = None,
    validation_schema: Optional[Mapping[str, str]] = None,
    include_metadata: bool = False,
    before_deploy: Optional[Callable[[], None]] = None,
    after_deploy: Optional[Callable[[], None]] = None,
) -> Path:
    """Write a configuration over an existing file, keeping a backup.

    Args:
        config: Configuration to deploy
        config_path: Destination file
        format: One of EXPORT_FORMATS
        backup_path: Where to copy the current file first; ``{timestamp}`` is
            replaced with the current UTC time. No backup when the file is missing.
        validation_schema: Mapping of required key to type name, see validate_configuration
        include_metadata: Passed to format_configuration
        before_deploy: Called before anything is touched
        after_deploy: Called after the file is written

    Returns:
        Path of the deployed file
    """
    if before_deploy is not None:
        before_deploy()

    config_path = Path(config_path)
    if backup_path and config_path.exists():
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup_file = Path(backup_path.replace("{timestamp}", timestamp))
        backup_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(config_path, backup_file)
        logger.info("Backed up %s to %s", config_path, backup_file)

    if validation_schema:
        validate_configuration(config, validation_schema)

    deployed = export_configuration(config, config_path, format, include_metadata)

    if after_deploy is not None:
        after_deploy()
    return deployed
