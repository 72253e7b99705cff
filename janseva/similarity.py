import numpy as np


def cosine_similarity(a, b) -> float:
    """Cosine similarity of two numeric vectors.

    Missing, empty, differently sized or zero-magnitude vectors score 0.0.
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0 or not np.isfinite(norm):
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))
