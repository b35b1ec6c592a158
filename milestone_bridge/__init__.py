"""Milestone bridge: pushes on-chain payment milestones to websocket clients."""

__version__ = "0.1.0"
