from __future__ import annotations
"""
Ranking primitives for the card search pipeline.

Hybrid retrieval = keyword matching + exhaustive cosine similarity, merged
with Reciprocal Rank Fusion (RRF). Both rankers only ever see the filtered
candidate set; the catalog is small enough that no ANN index is needed.
"""

import math
from typing import Dict, List, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import RRF_K
from .embed_index import EmbeddingStore
from .errors import EmbeddingDimensionError
from .pipeline_types import FusedRanking


# =============================================================================
# Vector similarity
# =============================================================================

def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype="float32")
    b = np.asarray(b, dtype="float32")
    na, nb = float(np.linalg.norm(a)), float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(a, b) / (na * nb))


def vector_scores(
    query_vector: np.ndarray,
    store: EmbeddingStore,
    candidate_ids: Sequence[str],
) -> List[Tuple[str, float]]:
    """
    Cosine similarity for every candidate present in ``store``.

    Candidates the store does not know are skipped. Output keeps candidate
    order; sorting is left to the caller.
    """
    q = np.asarray(query_vector, dtype="float32").reshape(-1)
    if q.shape[0] != store.dim:
        raise EmbeddingDimensionError(expected=store.dim, got=int(q.shape[0]))

    present = [cid for cid in candidate_ids if cid in store]
    if not present:
        return []
    qn = float(np.linalg.norm(q))
    rows = store.matrix[[store.row_of[cid] for cid in present]]
    if qn == 0.0:
        sims = np.zeros(len(present), dtype="float32")
    else:
        sims = rows @ (q / qn)
    return [(cid, float(s)) for cid, s in zip(present, sims)]


def vector_ranking(
    query_vector: np.ndarray,
    store: EmbeddingStore,
    candidate_ids: Sequence[str],
) -> List[str]:
    """Candidates by descending cosine similarity; ties keep candidate order."""
    scored = vector_scores(query_vector, store, candidate_ids)
    if not scored:
        return []
    sims = np.asarray([s for _, s in scored], dtype="float64")
    order = np.argsort(-sims, kind="stable")
    ranked = [scored[i][0] for i in order]
    logger.debug(
        "vector: {}/{} candidates embedded, top={}", len(ranked), len(candidate_ids), ranked[:3]
    )
    return ranked


# =============================================================================
# Fusion
# =============================================================================

def _rrf_score(rank: int, k: int) -> float:
    return 1.0 / (float(k) + float(rank))


def reciprocal_rank_fusion(rankings: Sequence[Sequence[str]], k: int = RRF_K) -> FusedRanking:
    """
    Fuse rankings with RRF: score(id) = sum of 1 / (k + rank), rank 1-based.

    Ties are broken by the first ranking (in argument order) that contains the
    id, then by the id's position in that ranking. A single ranking therefore
    comes back unchanged, and zero rankings fuse to nothing.
    """
    contributions: Dict[str, List[float]] = {}
    first_seen: Dict[str, Tuple[int, int]] = {}

    for list_idx, ranking in enumerate(rankings):
        seen_here = set()
        for pos, cid in enumerate(ranking, start=1):
            if cid in seen_here:
                continue
            seen_here.add(cid)
            contributions.setdefault(cid, []).append(_rrf_score(pos, k))
            first_seen.setdefault(cid, (list_idx, pos))

    # fsum: equal multisets of terms give bit-identical totals
    scores = {cid: math.fsum(terms) for cid, terms in contributions.items()}
    order = sorted(scores, key=lambda cid: (-scores[cid], first_seen[cid]))
    return FusedRanking(order=order, scores=scores)
