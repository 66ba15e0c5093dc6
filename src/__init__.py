"""
Evict to Rollout - drain-safe restarts for single-replica Deployments.

Finds opted-in pods on cordoned nodes, walks them up to their owning
Deployment, and triggers a rollout restart so a replacement pod is
scheduled elsewhere before the old one is evicted.
"""

__version__ = "0.1.0"
