import numpy as np
import pytest

from t2.candidate import Candidate
from t2.stages.clustering import NOISE, ClusteringError, cluster
from t2.stages.features import candidate_features


def test_features_log2_boxcar():
    cands = [
        Candidate(25.0, 0, 100, 60000.0, 4, 50, 50.0),
        Candidate(15.0, 0, 101, 60000.0, 8, 51, 51.0),
    ]
    f = candidate_features(cands)
    assert f.shape == (2, 3)
    assert np.allclose(f, [[100, 50, 2], [101, 51, 3]])
    lin = candidate_features(cands, mode="linear")
    assert np.allclose(lin[:, 2], [4, 8])


def test_features_empty_and_bad_mode():
    assert candidate_features([]).shape == (0, 3)
    with pytest.raises(ValueError):
        candidate_features([], mode="sqrt")


def test_cluster_core_border_noise():
    pts = np.array([
        [-1.0, 0.0, 0.0],
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [5.0, 0.0, 0.0],
    ])
    labels = cluster(pts, min_pts=3, eps=1.0)
    # middle point is core; its neighbours join as border points
    assert labels[0] == labels[1] == labels[2] != NOISE
    assert labels[3] == NOISE


def test_cluster_empty_short_circuits():
    labels = cluster(np.zeros((0, 3)))
    assert labels.shape == (0,)


def test_cluster_non_finite_rows_are_noise():
    pts = np.array([[0.0, 0.0, -np.inf], [0.0, 0.0, 0.0], [0.0, 0.0, 0.5], [0.0, np.nan, 0.0]])
    labels = cluster(pts, min_pts=2, eps=1.0)
    assert labels[0] == NOISE and labels[3] == NOISE
    assert labels[1] == labels[2] != NOISE
    assert (cluster(pts[[0, 3]], min_pts=1, eps=1.0) == NOISE).all()


def test_cluster_rejects_bad_shape():
    with pytest.raises(ClusteringError):
        cluster(np.zeros((3,)) + 1.0)


def test_cluster_membership_is_order_invariant():
    rng = np.random.default_rng(7)
    a = rng.normal(0.0, 1.0, size=(12, 3))
    b = rng.normal(100.0, 1.0, size=(12, 3))
    pts = np.vstack([a, b, [[50.0, 50.0, 50.0]]])
    perm = rng.permutation(len(pts))

    def groups(points, labels):
        out = {}
        for p, lb in zip(points.tolist(), labels.tolist()):
            out.setdefault(lb, set()).add(tuple(p))
        noise = frozenset(out.pop(NOISE, set()))
        return {frozenset(g) for g in out.values()}, noise

    assert groups(pts, cluster(pts, min_pts=5, eps=14.0)) == groups(pts[perm], cluster(pts[perm], min_pts=5, eps=14.0))
