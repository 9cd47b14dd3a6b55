"""Cluster: lease coordination for multi-instance deployments.

Guarantees a single active cycle scheduler per state store, either
in-process (``memory``) or across hosts through Redis ``SET NX EX``.
"""

from __future__ import annotations

from reward_engine.cluster.client import ClusterClient

__all__ = ["ClusterClient"]
