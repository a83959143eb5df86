from __future__ import annotations

from typing import Tuple, Type

import torch as th
import torch.nn as nn

from ..utils.network_utils import SQRT2, _init_gru, _make_weights_init, _validate_hidden_sizes


# =============================================================================
# Feature Extractors
# =============================================================================
class MLPFeaturesExtractor(nn.Module):
    """
    Plain MLP tower: (Linear -> Activation) repeated.

    Parameters
    ----------
    input_dim : int
        Input dimensionality.
    hidden_sizes : Tuple[int, ...]
        Hidden layer widths; ``out_dim == hidden_sizes[-1]``.
    activation_fn : type[nn.Module], default=nn.Tanh
        Activation inserted after every linear layer.
    """

    def __init__(
        self,
        input_dim: int,
        hidden_sizes: Tuple[int, ...],
        activation_fn: Type[nn.Module] = nn.Tanh,
    ) -> None:
        super().__init__()
        hs = _validate_hidden_sizes(hidden_sizes)

        layers: list[nn.Module] = []
        prev_dim = int(input_dim)
        for h in hs:
            layers.append(nn.Linear(prev_dim, h))
            layers.append(activation_fn())
            prev_dim = h

        self.net = nn.Sequential(*layers)
        self.out_dim = int(hs[-1])

    def forward(self, x: th.Tensor) -> th.Tensor:
        return self.net(x)


# =============================================================================
# Actor-critic base (optionally recurrent)
# =============================================================================
class MLPBase(nn.Module):
    """
    Actor-critic body with separate actor and critic towers.

    Layout
    ------
    obs -> [GRU] -> actor tower  -> actor features (B, hidden_size)
                 -> critic tower -> critic_linear  -> value (B, 1)

    Parameters
    ----------
    num_inputs : int
        Flattened observation dimensionality.
    recurrent : bool, default=False
        Insert a single-layer GRU in front of both towers.
    hidden_size : int, default=64
        Width of the GRU state and of every tower layer.
    num_layers : int, default=2
        Number of (Linear -> Tanh) layers per tower.

    Hidden state contract
    ---------------------
    `forward(inputs, hxs, masks)` takes ``hxs`` of shape
    (N, recurrent_hidden_state_size). A stateless base uses a width-1
    placeholder and returns it unchanged.

    For a recurrent base, the hidden state is multiplied by a step's mask
    before that step is consumed, so ``mask == 0`` starts a fresh episode.
    When ``inputs`` holds T*N rows (a flattened (T, N) rollout) and ``hxs``
    holds N rows, the rollout is unrolled in time, split into segments at
    every step where any environment's mask is zero.
    """

    def __init__(
        self,
        num_inputs: int,
        *,
        recurrent: bool = False,
        hidden_size: int = 64,
        num_layers: int = 2,
    ) -> None:
        super().__init__()
        if int(hidden_size) <= 0:
            raise ValueError(f"hidden_size must be > 0, got {hidden_size}")
        if int(num_layers) <= 0:
            raise ValueError(f"num_layers must be > 0, got {num_layers}")

        self.num_inputs = int(num_inputs)
        self._recurrent = bool(recurrent)
        self._hidden_size = int(hidden_size)

        tower_in = self.num_inputs
        if self._recurrent:
            self.gru = nn.GRU(self.num_inputs, self._hidden_size)
            _init_gru(self.gru)
            tower_in = self._hidden_size

        sizes = (self._hidden_size,) * int(num_layers)
        self.actor = MLPFeaturesExtractor(tower_in, sizes, activation_fn=nn.Tanh)
        self.critic = MLPFeaturesExtractor(tower_in, sizes, activation_fn=nn.Tanh)
        self.critic_linear = nn.Linear(self._hidden_size, 1)

        init_fn = _make_weights_init("orthogonal", gain=SQRT2, bias=0.0)
        self.actor.apply(init_fn)
        self.critic.apply(init_fn)
        self.critic_linear.apply(_make_weights_init("orthogonal", gain=1.0, bias=0.0))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def is_recurrent(self) -> bool:
        return self._recurrent

    @property
    def recurrent_hidden_state_size(self) -> int:
        """Hidden size when recurrent, else the width-1 placeholder."""
        return self._hidden_size if self._recurrent else 1

    @property
    def output_size(self) -> int:
        return self._hidden_size

    # ------------------------------------------------------------------
    # Forward
    # ------------------------------------------------------------------
    def forward(self, inputs: th.Tensor, hxs: th.Tensor, masks: th.Tensor) -> Tuple[th.Tensor, th.Tensor, th.Tensor]:
        """
        Parameters
        ----------
        inputs : torch.Tensor
            Observations, shape (B, num_inputs).
        hxs : torch.Tensor
            Hidden state, shape (N, recurrent_hidden_state_size); N == B for a
            single step, or B == T * N for a flattened rollout.
        masks : torch.Tensor
            Continuation masks, shape (B, 1).

        Returns
        -------
        value : torch.Tensor
            Shape (B, 1).
        actor_features : torch.Tensor
            Shape (B, hidden_size).
        hxs : torch.Tensor
            Next hidden state, shape (N, recurrent_hidden_state_size).
        """
        x = inputs
        if self._recurrent:
            x, hxs = self._forward_gru(x, hxs, masks)

        hidden_critic = self.critic(x)
        hidden_actor = self.actor(x)
        return self.critic_linear(hidden_critic), hidden_actor, hxs

    def _forward_gru(self, x: th.Tensor, hxs: th.Tensor, masks: th.Tensor) -> Tuple[th.Tensor, th.Tensor]:
        if x.size(0) == hxs.size(0):
            out, h = self.gru(x.unsqueeze(0), (hxs * masks).unsqueeze(0))
            return out.squeeze(0), h.squeeze(0)

        N = hxs.size(0)
        if N == 0 or x.size(0) % N != 0:
            raise ValueError(f"cannot unroll {x.size(0)} inputs over {N} hidden states")
        T = x.size(0) // N

        x = x.view(T, N, x.size(1))
        masks = masks.view(T, N)

        # Steps (after the first) where any env starts a new episode.
        has_zeros = (masks[1:] == 0.0).any(dim=-1).nonzero().squeeze(-1).cpu()
        starts = [0] + (has_zeros + 1).tolist() + [T]

        h = hxs.unsqueeze(0)
        outputs = []
        for i in range(len(starts) - 1):
            s, e = starts[i], starts[i + 1]
            out, h = self.gru(x[s:e], h * masks[s].view(1, -1, 1))
            outputs.append(out)

        x = th.cat(outputs, dim=0).view(T * N, -1)
        return x, h.squeeze(0)
