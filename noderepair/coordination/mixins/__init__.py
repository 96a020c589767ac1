"""Reusable mixins for coordination components."""

from noderepair.coordination.mixins.lifecycle_mixin import LifecycleMixin, LifecycleState

__all__ = [
    "LifecycleMixin",
    "LifecycleState",
]
