"""
Persistence of feature matrices.

A feature file holds the matrix X (epochs x features), the stage labels y
and the feature names. `.mat` files are written with scipy.io (variables X,
y and columns), `.csv` files with pandas (one column per feature plus a
`label` column).
"""

from pathlib import Path

import numpy as np
import pandas as pd
import scipy.io as sio


def _as_strings(values):
    return np.array([str(v) for v in values], dtype=str)


def save_feature_matrix(path, X, y, columns=None):
    """
    Save a feature matrix and its labels to a .mat or .csv file.

    Args:
        path (str or Path): output file; the suffix selects the format
        X (array_like): features, shape (n_epochs, n_features)
        y (sequence): label of every epoch
        columns (sequence, optional): feature names, default f0, f1, ...

    Returns:
        Path: the written file
    """
    path = Path(path)
    X = np.atleast_2d(np.asarray(X, dtype=float))
    y = list(y)
    if X.shape[0] != len(y):
        raise ValueError(f"X has {X.shape[0]} rows but {len(y)} labels were given.")
    if columns is None:
        columns = [f"f{i}" for i in range(X.shape[1])]
    columns = list(columns)
    if len(columns) != X.shape[1]:
        raise ValueError(f"X has {X.shape[1]} columns but {len(columns)} names were given.")

    path.parent.mkdir(parents=True, exist_ok=True)
    suffix = path.suffix.lower()
    if suffix == ".mat":
        sio.savemat(path, {"X": X, "y": _as_strings(y), "columns": _as_strings(columns)})
    elif suffix == ".csv":
        table = pd.DataFrame(X, columns=columns)
        table["label"] = y
        table.to_csv(path, index=False)
    else:
        raise ValueError(f"Unsupported feature file format '{suffix}', use .mat or .csv.")
    return path


def load_feature_matrix(path):
    """
    Load a feature file written by save_feature_matrix.

    Returns:
        tuple: (X, y, columns) with X a 2-D float array and y, columns lists of str
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".mat":
        mat_data = sio.loadmat(path)
        X = np.asarray(mat_data["X"], dtype=float)
        # Character matrices come back padded with blanks
        y = [str(v).rstrip() for v in np.atleast_1d(mat_data["y"])]
        columns = [str(v).rstrip() for v in np.atleast_1d(mat_data["columns"])]
        return X, y, columns
    if suffix == ".csv":
        table = pd.read_csv(path, dtype={"label": str})
        y = table.pop("label").astype(str).tolist()
        return table.to_numpy(dtype=float), y, list(table.columns)
    raise ValueError(f"Unsupported feature file format '{suffix}', use .mat or .csv.")
