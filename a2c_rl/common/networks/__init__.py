"""
Networks
====================

Building blocks for actor-critic policies.

- distributions
    Categorical / DiagGaussian / Bernoulli wrappers sharing one capability set.
- base_networks
    MLP towers and the (optionally recurrent) actor-critic `MLPBase`.
- policy_networks
    Distribution output layers and `build_output_layer`.
"""

from __future__ import annotations

from .base_networks import MLPBase, MLPFeaturesExtractor
from .distributions import (
    BaseDistribution,
    BernoulliDistribution,
    CategoricalDistribution,
    DiagGaussianDistribution,
)
from .policy_networks import BernoulliOutput, CategoricalOutput, DiagGaussianOutput, build_output_layer

__all__ = [
    "MLPBase",
    "MLPFeaturesExtractor",
    "BaseDistribution",
    "BernoulliDistribution",
    "CategoricalDistribution",
    "DiagGaussianDistribution",
    "BernoulliOutput",
    "CategoricalOutput",
    "DiagGaussianOutput",
    "build_output_layer",
]
