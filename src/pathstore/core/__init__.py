"""Structural-mutation engine: collision resolution, move validation,
key enumeration, plan execution and version snapshots."""
