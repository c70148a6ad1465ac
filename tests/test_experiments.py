"""Tests for experiment configuration and grid expansion."""
import pytest
from pydantic import ValidationError

from paramarena.experiments import (
    EvaluationPolicy,
    ExperimentConfig,
    ParameterGrid,
    generate_combinations,
)
from paramarena.experiments.schema import resolve_callable
from paramarena.ratings.keys import RatingKey, combination_key


class TestParameterGrid:
    """Tests for ParameterGrid combination generation."""

    def test_generate_combinations_single_param(self):
        """Test grid with a single parameter."""
        grid = ParameterGrid(parameters={"model": ["gpt-4", "claude-3", "gemini"]})

        combinations = grid.generate_combinations()

        assert len(combinations) == 3
        assert combinations[0] == {"model": "gpt-4"}
        assert combinations[2] == {"model": "gemini"}

    def test_generate_combinations_multiple_params(self):
        """Test grid with multiple parameters (cartesian product)."""
        grid = ParameterGrid(
            parameters={
                "model": ["gpt-4", "claude-3"],
                "temperature": [0.5, 0.7],
            }
        )

        combinations = grid.generate_combinations()

        assert len(combinations) == 4  # 2 x 2 = 4 combinations
        assert grid.size == 4
        # Leftmost parameter varies slowest
        assert combinations == [
            {"model": "gpt-4", "temperature": 0.5},
            {"model": "gpt-4", "temperature": 0.7},
            {"model": "claude-3", "temperature": 0.5},
            {"model": "claude-3", "temperature": 0.7},
        ]

    def test_count_is_product_of_value_counts(self):
        """Test that the number of combinations is the product of value counts."""
        grid = ParameterGrid.from_mapping({"a": [1, 2, 3], "b": ["x", "y"], "c": [True]})

        assert len(grid.generate_combinations()) == 6
        assert grid.size == 6

    def test_combinations_are_unique(self):
        """Test that every combination appears exactly once."""
        combinations = generate_combinations({"a": [1, 2], "b": [3, 4], "c": [5, 6]})

        keys = [combination_key(c) for c in combinations]
        assert len(keys) == len(set(keys)) == 8

    def test_empty_grid(self):
        """Test that a grid without parameters yields one empty combination."""
        assert ParameterGrid().generate_combinations() == [{}]

    def test_parameter_without_values(self):
        """Test that a parameter with no values yields no combinations."""
        grid = ParameterGrid(parameters={"model": ["gpt-4"], "temperature": []})

        assert grid.generate_combinations() == []
        assert grid.size == 0

    def test_generation_is_deterministic(self):
        """Test that the same grid always expands the same way."""
        mapping = {"model": ["gpt-4", "claude-3"], "top_k": [1, 5, 10]}

        assert generate_combinations(mapping) == generate_combinations(mapping)

    @pytest.mark.parametrize("name", ["a:b", "a=b", "a,b"])
    def test_reserved_characters_rejected(self, name):
        """Test that names that would make keys ambiguous are rejected."""
        with pytest.raises(ValueError, match="must not contain"):
            ParameterGrid(parameters={name: [1]})

    def test_empty_name_rejected(self):
        """Test that an empty parameter name is rejected."""
        with pytest.raises(ValueError, match="must be non-empty"):
            ParameterGrid(parameters={"": [1]})

    @pytest.mark.parametrize("values", [["a", "a"], [1, "1"], [0.5, 0.5, 0.7]])
    def test_repeated_value_rejected(self, values):
        """Test that values with the same rating identity cannot both be listed."""
        with pytest.raises(ValueError, match="more than once"):
            ParameterGrid(parameters={"m": values})

    def test_same_value_across_parameters_allowed(self):
        """Test that two parameters may share a value."""
        grid = ParameterGrid(parameters={"a": [1, 2], "b": [1, 2]})

        assert grid.size == 4


class TestRatingKeys:
    """Tests for combination and parameter identities."""

    def test_combination_key_format(self):
        """Test canonical key in grid order."""
        assert combination_key({"model": "gpt-4", "temperature": 0.5}) == "model=gpt-4,temperature=0.5"

    def test_parameter_discriminator(self):
        """Test parameter key uses name and value."""
        key = RatingKey.for_parameter("temperature", 0.7)

        assert key.discriminator == "temperature:0.7"
        assert key.dimension == "parameter"
        assert key.parameter_value == 0.7

    def test_keys_compare_by_identity(self):
        """Test that keys with the same discriminator are equal and hash alike."""
        a = RatingKey.for_combination({"model": "gpt-4"})
        b = RatingKey.for_combination({"model": "gpt-4"})

        assert a == b
        assert len({a, b}) == 1
        assert a != RatingKey.for_parameter("model", "gpt-4")


class TestEvaluationPolicy:
    """Tests for EvaluationPolicy validation."""

    def test_defaults(self):
        """Test default direction and error penalty."""
        policy = EvaluationPolicy(type="numeric")

        assert policy.higher_is_better is True
        assert policy.error_penalty == 1.0
        assert policy.custom_comparator is None

    def test_custom_requires_comparator(self):
        """Test that a custom policy without comparator is rejected."""
        with pytest.raises(ValueError, match="custom evaluation requires a custom_comparator"):
            EvaluationPolicy(type="custom")

    def test_custom_with_comparator(self):
        """Test that a custom policy keeps its comparator."""
        policy = EvaluationPolicy(type="custom", custom_comparator=lambda a, b: "draw")

        assert policy.custom_comparator(1, 2) == "draw"

    def test_unknown_type_rejected(self):
        """Test that unknown evaluation types are rejected."""
        with pytest.raises(ValidationError):
            EvaluationPolicy(type="semantic")

    def test_error_penalty_bounds(self):
        """Test that error_penalty must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            EvaluationPolicy(type="string", error_penalty=1.5)


class TestResolveCallable:
    """Tests for module:attribute resolution."""

    def test_resolves_attribute(self):
        """Test resolving a dotted attribute path."""
        import os.path

        assert resolve_callable("os.path:join") is os.path.join

    def test_invalid_format(self):
        """Test that a path without a colon is rejected."""
        with pytest.raises(ValueError, match="Expected 'module:attribute'"):
            resolve_callable("os.path.join")

    def test_non_callable(self):
        """Test that a non-callable target is rejected."""
        with pytest.raises(ValueError, match="does not resolve to a callable"):
            resolve_callable("os:sep")


class TestExperimentConfig:
    """Tests for ExperimentConfig loading and validation."""

    def test_from_yaml(self, tmp_path):
        """Test loading an experiment from YAML."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            "description: Temperature sweep\n"
            "parameters:\n"
            "  model: [gpt-4, claude-3]\n"
            "  temperature: [0.5, 0.7]\n"
            "target: os.path:join\n"
            "evaluation:\n"
            "  type: numeric\n"
            "  higher_is_better: false\n"
            "  error_penalty: 0.8\n"
            "max_concurrency: 2\n",
            encoding="utf-8",
        )

        config = ExperimentConfig.from_yaml(path)

        assert config.description == "Temperature sweep"
        assert config.grid.size == 4
        assert config.max_concurrency == 2
        policy = config.to_policy()
        assert policy.type == "numeric"
        assert policy.higher_is_better is False
        assert policy.error_penalty == 0.8

    def test_metric_from_yaml(self, tmp_path):
        """Test that the evaluation metric path reaches the policy."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            "description: Token sweep\n"
            "parameters:\n"
            "  model: [gpt-4]\n"
            "target: os.path:join\n"
            "evaluation:\n"
            "  type: numeric\n"
            "  metric: usage.total_tokens\n",
            encoding="utf-8",
        )

        policy = ExperimentConfig.from_yaml(path).to_policy()

        assert policy.metric == "usage.total_tokens"

    def test_without_evaluation(self):
        """Test that a config without evaluation yields no policy."""
        config = ExperimentConfig(description="d", parameters={"a": [1]}, target="os.path:join")

        assert config.to_policy() is None

    def test_custom_comparator_resolved(self):
        """Test that a custom comparator path is imported."""
        config = ExperimentConfig(
            description="d",
            parameters={"a": [1]},
            target="os.path:join",
            evaluation={"type": "custom", "comparator": "os.path:join"},
        )

        import os.path

        assert config.to_policy().custom_comparator is os.path.join

    def test_custom_without_comparator(self):
        """Test that a custom evaluation section without comparator fails."""
        config = ExperimentConfig(
            description="d",
            parameters={"a": [1]},
            target="os.path:join",
            evaluation={"type": "custom"},
        )

        with pytest.raises(ValueError, match="custom evaluation requires"):
            config.to_policy()

    def test_validate_empty_grid(self):
        """Test that a grid with no combinations is rejected."""
        config = ExperimentConfig(description="d", parameters={"a": []}, target="os.path:join")

        with pytest.raises(ValueError, match="at least one combination"):
            config.validate()

    def test_validate_ok(self):
        """Test that a non-empty grid validates."""
        config = ExperimentConfig(description="d", parameters={"a": [1, 2]}, target="os.path:join")

        config.validate()  # Should not raise
