"""
Pad or truncate embeddings to the dimension of the active vector index.
"""
from typing import List, Sequence


def needs_reconciliation(length: int, target_dimension: int) -> bool:
    return length != target_dimension


def reconcile_dimension(vector: Sequence[float], target_dimension: int) -> List[float]:
    """
    Force a vector to exactly `target_dimension` entries.

    Longer vectors keep their first `target_dimension` entries (no
    renormalisation), shorter ones are right-padded with zeros.

    Args:
        vector: Embedding values
        target_dimension: Dimension configured on the vector index

    Returns:
        A new list of length `target_dimension`
    """
    if target_dimension <= 0:
        raise ValueError(f"target_dimension must be positive, got {target_dimension}")

    values = [float(v) for v in vector]
    if len(values) >= target_dimension:
        return values[:target_dimension]
    return values + [0.0] * (target_dimension - len(values))
