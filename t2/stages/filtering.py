from __future__ import annotations

from typing import Iterable, List

from t2.candidate import Candidate


def filter_candidates(
    cands: Iterable[Candidate],
    *,
    min_snr: float,
    min_dm: float,
    max_dm: float,
) -> List[Candidate]:
    """Keep candidates with SNR above ``min_snr`` and DM inside (min_dm, max_dm)."""
    return [
        c
        for c in cands
        if c.significance > min_snr and min_dm < c.dispersion_measure < max_dm
    ]
