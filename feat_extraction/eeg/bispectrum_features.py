"""
Entropy features of bispectrum / bicoherence matrices.

For every 30 s epoch the magnitude of its bispectrum matrix is normalised by
its peak and summarised by:

  ent1, ent2, ent3 : Shannon-style entropies of b, b^2 and b^3
  H1               : sum of log2 magnitudes over the whole matrix
  H2               : sum of log2 magnitudes along the anti-diagonal

Terms of the entropy sums whose normalised magnitude is exactly zero
contribute 0 (the limit of p*log2(p) as p -> 0).
"""

from functools import partial

import numpy as np
import pandas as pd

from feat_extraction.config import EPSILON
from feat_extraction.epochs.epoch_segmentation import map_epochs
from feat_extraction.errors import ShapeError

FEATURE_NAMES = ["ent1", "ent2", "ent3", "H1", "H2"]


def _check_square(bis):
    if bis.ndim != 2 or bis.shape[0] != bis.shape[1]:
        raise ShapeError(f"Bispectrum matrix must be square, got shape {bis.shape}.")
    if bis.shape[0] < 2:
        raise ShapeError(f"Bispectrum matrix must be at least 2x2, got shape {bis.shape}.")


def shannon_terms_sum(p):
    """
    Return -sum(p * log2(p)) where zero entries contribute exactly 0.

    Underflow of a small p to 0 (e.g. for b**3) is handled the same way.
    """
    p = np.asarray(p, dtype=float).ravel()
    nonzero = p > 0
    return float(-np.sum(p[nonzero] * np.log2(p[nonzero])))


def bispectrum_entropy_features(bis, epsilon=EPSILON):
    """
    Compute the entropy and log-average features of one bispectrum matrix.

    Parameters:
    -----------
    bis : array_like
        Square bispectrum or bicoherence matrix (complex or real).
    epsilon : float, optional
        Small positive constant added for numerical stability, default 1e-5.

    Returns:
    --------
    dict
        {'ent1', 'ent2', 'ent3', 'H1', 'H2'}
    """
    bis = np.abs(np.asarray(bis))
    _check_square(bis)

    b = bis / (np.max(bis) + epsilon)

    features = {}
    for order in (1, 2, 3):
        features[f"ent{order}"] = shannon_terms_sum(b ** order)

    features["H1"] = float(np.sum(np.log2(bis + epsilon)))
    features["H2"] = float(np.sum(np.log2(np.diag(np.flipud(bis + epsilon)))))
    return features


def extract_bispectrum_features(bispectra, labels, epsilon=EPSILON, n_jobs=1):
    """
    Tabulate bispectrum features for a sequence of epochs.

    Args:
        bispectra: sequence of square matrices, or a 3-D array (n_epochs, n, n)
        labels: sleep stage label of every epoch, copied unchanged
        epsilon (float): numerical stability constant
        n_jobs (int): number of joblib workers

    Returns:
        pd.DataFrame: columns ent1, ent2, ent3, H1, H2, label; one row per epoch
    """
    bispectra = list(bispectra)
    labels = list(labels)
    if len(bispectra) != len(labels):
        raise ShapeError(f"Got {len(bispectra)} bispectrum matrices but {len(labels)} labels.")

    rows = map_epochs(partial(bispectrum_entropy_features, epsilon=epsilon), bispectra, n_jobs)

    table = pd.DataFrame(rows, columns=FEATURE_NAMES, dtype=float)
    table["label"] = pd.Series(labels, dtype=object)
    return table
