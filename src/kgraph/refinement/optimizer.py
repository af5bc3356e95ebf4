"""Per-vector AdamW state keyed by entity id."""

from dataclasses import dataclass

import numpy as np


@dataclass
class _Moments:
    m: np.ndarray
    v: np.ndarray
    t: int = 0


class AdamW:
    """AdamW with decoupled weight decay, one moment pair per entity id.

    State lives for the lifetime of the optimizer, so momentum carries
    across epochs.
    """

    def __init__(
        self,
        dim: int,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        weight_decay: float = 0.01,
    ):
        self.dim = dim
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.weight_decay = weight_decay
        self._state: dict[str, _Moments] = {}

    def _moments(self, key: str) -> _Moments:
        if key not in self._state:
            self._state[key] = _Moments(m=np.zeros(self.dim), v=np.zeros(self.dim))
        return self._state[key]

    def step(self, key: str, param: np.ndarray, grad: np.ndarray, lr: float) -> np.ndarray:
        """Return the updated parameter; `param` itself is not modified."""
        s = self._moments(key)
        s.t += 1
        # decay first, then the adaptive gradient step
        updated = param * (1.0 - lr * self.weight_decay)
        s.m = self.beta1 * s.m + (1.0 - self.beta1) * grad
        s.v = self.beta2 * s.v + (1.0 - self.beta2) * grad * grad
        m_hat = s.m / (1.0 - self.beta1 ** s.t)
        v_hat = s.v / (1.0 - self.beta2 ** s.t)
        return updated - lr * m_hat / (np.sqrt(v_hat) + self.epsilon)
