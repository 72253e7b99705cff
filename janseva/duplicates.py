import logging
from typing import Iterable, Optional, Sequence

import numpy as np

from .models import DuplicateCheckResult
from .similarity import cosine_similarity

logger = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 0.85
RECENT_WINDOW_DAYS = 7
RECENT_WINDOW_LIMIT = 50


def _is_empty(vec) -> bool:
    return vec is None or len(vec) == 0


def _check_vector(vec) -> None:
    if isinstance(vec, (str, bytes)):
        raise TypeError("embedding must be a sequence of numbers")
    try:
        arr = np.asarray(vec, dtype=float)
    except (TypeError, ValueError):
        raise TypeError("embedding must be a sequence of numbers")
    if arr.ndim != 1:
        raise TypeError("embedding must be one-dimensional")


def detect_duplicate(candidate_text: str, candidate_embedding: Optional[Sequence[float]],
                     recent_window: Iterable[dict]) -> DuplicateCheckResult:
    """Find the closest recent complaint to a candidate description.

    ``recent_window`` is the storage snapshot of recent complaints (newest
    first); entries without an embedding are skipped. Embeddings may be lists
    or numpy arrays. Only the description channel is compared, so a match
    always reports ``matched_field="text"``.
    """
    if _is_empty(candidate_embedding):
        return DuplicateCheckResult()
    _check_vector(candidate_embedding)

    best_similarity = 0.0
    best_id = None
    compared = 0
    for complaint in recent_window:
        embedding = complaint.get("embedding")
        if _is_empty(embedding):
            continue
        compared += 1
        similarity = cosine_similarity(candidate_embedding, embedding)
        # strictly greater: ties keep the earlier entry
        if similarity > best_similarity:
            best_similarity = similarity
            best_id = complaint.get("_id")

    if compared == 0:
        return DuplicateCheckResult()

    result = DuplicateCheckResult(
        is_duplicate=best_similarity > DUPLICATE_THRESHOLD,
        similarity=best_similarity,
        matching_complaint_id=str(best_id) if best_id is not None else None,
        matched_field="text",
    )
    if result.is_duplicate:
        logger.info("Duplicate of %s (similarity %.3f): %.60s",
                    result.matching_complaint_id, best_similarity, candidate_text or "")
    return result
