"""Estimated mining earnings from live hash rate and network parameters; no I/O."""

from __future__ import annotations

BLOCKS_PER_DAY = 360


def estimate_daily_earnings(block_reward: int, hash_rate: float, network_hash_rate: float, blocks_per_day: int = BLOCKS_PER_DAY) -> int:
    """
    Expected reward per day in the smallest currency unit.

    Args:
        block_reward: Reward of one block
        hash_rate: Local hash rate
        network_hash_rate: Total network hash rate for the same algorithm
        blocks_per_day: Blocks found per day for the algorithm

    Returns:
        The rounded-down estimate, 0 when the network hash rate is unknown
    """
    if network_hash_rate <= 0 or hash_rate <= 0 or block_reward <= 0:
        return 0
    return int(block_reward * hash_rate / network_hash_rate * blocks_per_day)


__all__ = ["BLOCKS_PER_DAY", "estimate_daily_earnings"]
