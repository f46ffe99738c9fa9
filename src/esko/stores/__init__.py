"""Persistence backends for the reward engine."""

from esko.stores.base import RewardStore
from esko.stores.memory import MemoryRewardStore
from esko.stores.sql import SqlRewardStore

__all__ = ["MemoryRewardStore", "RewardStore", "SqlRewardStore"]
