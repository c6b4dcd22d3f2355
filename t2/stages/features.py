from __future__ import annotations

from typing import Sequence

import numpy as np

from t2.candidate import Candidate


def candidate_features(cands: Sequence[Candidate], mode: str = "log2") -> np.ndarray:
    """Cluster candidates in (time, dm, box width) space.

    Row i is ``(time_index, dm_index, log2(boxcar_index))`` for candidate i.
    The log compresses the power-of-two boxcar trials so width differences do
    not dominate the distance. ``mode="linear"`` keeps the raw boxcar index.
    """
    if mode not in ("log2", "linear"):
        raise ValueError(f"Unknown feature mode: {mode}")
    if not cands:
        return np.zeros((0, 3), dtype=float)

    params = np.array(
        [(c.time_index, c.dm_index, c.boxcar_index) for c in cands],
        dtype=float,
    )
    if mode == "log2":
        # box 0 -> -inf; the clustering stage labels such rows noise
        with np.errstate(divide="ignore", invalid="ignore"):
            params[:, 2] = np.log2(params[:, 2])
    return params
