"""
Baselines
=========

Algorithm implementations built on :mod:`a2c_rl.common`.

- a2c : synchronous Advantage Actor-Critic
"""
