"""
Policies
====================

Policy
    Actor-critic policy module: act / evaluate_actions / get_values / get_probs.
BaseCore
    Shared infrastructure for update engines (optimizer state, clipping,
    update counter).
"""

from __future__ import annotations

from .base_core import BaseCore
from .policy import Policy

__all__ = ["BaseCore", "Policy"]
