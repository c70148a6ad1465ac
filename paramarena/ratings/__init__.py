"""Elo ratings for parameter values and combinations."""
