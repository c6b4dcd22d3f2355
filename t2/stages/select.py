from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np

from t2.candidate import Candidate
from t2.stages.clustering import NOISE


def select_representatives(cands: Sequence[Candidate], labels: np.ndarray) -> List[Candidate]:
    """Best (highest SNR) candidate of every cluster, noise dropped.

    On an exact SNR tie the earlier candidate in gulp order is kept. Output
    follows the order in which each cluster is first seen.
    """
    labels = np.asarray(labels)
    if len(cands) != labels.shape[0]:
        raise ValueError("cands/labels length mismatch for representative selection")

    best: Dict[int, Candidate] = {}
    for cand, label in zip(cands, labels.tolist()):
        if label == NOISE:
            continue
        current = best.get(label)
        # Replace only if the SNR is larger
        if current is None or cand.significance > current.significance:
            best[label] = cand
    return list(best.values())
