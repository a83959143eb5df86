"""
common package
==============

Algorithm-agnostic building blocks shared by the baselines.

Subpackages
-----------
- buffers    : rollout storage and return computation
- loggers    : Logger frontend and CSV / JSONL / TensorBoard writers
- networks   : MLP / GRU actor-critic bodies, distributions, output layers
- optimizers : optimizer factory and gradient clipping
- policies   : Policy module and the BaseCore update-engine base
- testers    : self-contained test suites (runnable as scripts or via pytest)
- utils      : tensor conversion, initialization, normalization helpers

Modules
-------
- spaces : the closed `ActionSpace` description used by policies and storage
"""
