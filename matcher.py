# matcher.py
import logging
import math
from collections import Counter
from typing import List, NamedTuple, Sequence

from config import EXCLUDE_MATCHED, MAX_MATCH_RESULTS
from database import Database
from errors import NoCandidates

logger = logging.getLogger(__name__)


class MatchResult(NamedTuple):
    matched_user: str
    score: float


def parse_interests(interests_str: str) -> List[str]:
    """
    Split a comma-separated interest list into normalized tokens.
    Order and duplicates are kept: repeated interests weigh more when scoring.
    """
    if not interests_str:
        return []
    # split by comma, strip whitespace, lowercase
    return [p.strip().lower() for p in interests_str.split(",") if p.strip()]


def cosine_similarity(interests_a: Sequence[str], interests_b: Sequence[str]) -> float:
    """
    Cosine similarity of the two interest frequency vectors.

    Returns 0.0 when either side is empty. Dot product and magnitudes are
    integers, so the result is exactly symmetric; it is clamped to [0, 1].
    """
    counts_a = Counter(interests_a)
    counts_b = Counter(interests_b)
    if not counts_a or not counts_b:
        return 0.0
    dot = sum(n * counts_b[token] for token, n in counts_a.items() if token in counts_b)
    if dot == 0:
        return 0.0
    norm_sq_a = sum(n * n for n in counts_a.values())
    norm_sq_b = sum(n * n for n in counts_b.values())
    score = dot / math.sqrt(norm_sq_a * norm_sq_b)
    return min(1.0, max(0.0, score))


class MatchEngine:
    """Scores candidates by interest overlap and records the best pairing."""

    def __init__(self, db: Database, exclude_matched: bool = EXCLUDE_MATCHED):
        self.db = db
        self.exclude_matched = exclude_matched

    async def _scored_candidates(self, user_id: str) -> List[MatchResult]:
        me = await self.db.get_interests(user_id)  # raises NotFound
        others = await self.db.list_interests_except(user_id)
        if self.exclude_matched:
            already = set(await self.db.list_matches(user_id))
            others = [(other_id, interests) for other_id, interests in others if other_id not in already]
        return [MatchResult(other_id, cosine_similarity(me, interests)) for other_id, interests in others]

    async def find_best_match(self, user_id: str) -> MatchResult:
        candidates = await self._scored_candidates(user_id)
        if not candidates:
            raise NoCandidates(f"no candidates for {user_id}")

        best = candidates[0]
        for candidate in candidates[1:]:
            # strict: on ties the earliest candidate wins
            if candidate.score > best.score:
                best = candidate

        created = await self.db.insert_match_if_absent(user_id, best.matched_user)
        if created:
            logger.info("Matched %s with %s (score %.3f)", user_id, best.matched_user, best.score)
        else:
            logger.info("Pair %s/%s already recorded", user_id, best.matched_user)
        return best

    async def rank_candidates(self, user_id: str, limit: int = MAX_MATCH_RESULTS) -> List[MatchResult]:
        """
        Return up to `limit` candidates for `user_id`, best first. Nothing is recorded.
        Equal scores keep their iteration order.
        """
        candidates = await self._scored_candidates(user_id)
        # sort by descending score (stable, so ties stay in user id order)
        candidates.sort(key=lambda c: -c.score)
        return candidates[:limit]
