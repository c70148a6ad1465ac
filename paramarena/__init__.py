"""Parameter sweeps with persistent pairwise Elo ratings."""

__version__ = "0.1.0"
