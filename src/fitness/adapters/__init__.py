"""Upstream source clients."""

from src.fitness.adapters.oura import OuraAdapter
from src.fitness.adapters.strava import StravaAdapter

__all__ = ["OuraAdapter", "StravaAdapter"]
