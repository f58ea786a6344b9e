"""
Pattern selection across sampled candidate blocks.

Keeps the best match per template, corrects the raw scores for the
advantages small and simple templates enjoy, penalizes templates that are
already on screen or cooling down, and draws one of the top candidates
with softmax weights so the single best fit does not always win.

The matching work of one search is a SearchRound: a fixed list of
(template, block) pairs that can be drained in slices across frames and
is ranked only once every pair has been tried.
"""

from dataclasses import dataclass, field
import logging
from typing import Collection, Dict, List, Optional, Tuple

import numpy as np

from .patterns import PatternLibrary, Template
from .shape_matcher import Match, ShapeMatcher
from .spatial_index import Block


logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """The template and particle assignment chosen for a new constellation."""

    template: Template
    match: Match
    adjusted_score: float


@dataclass
class SearchRound:
    """Pending matching work of one search tick."""

    ndc: np.ndarray  # screen positions snapshotted when the round started
    pairs: List[Tuple[Template, Block]]
    block_count: int
    best: Dict[str, Match] = field(default_factory=dict)
    cursor: int = 0

    @property
    def done(self) -> bool:
        return self.cursor >= len(self.pairs)

    @property
    def remaining(self) -> int:
        return len(self.pairs) - self.cursor


class CooldownTable:
    """Per-template timestamp until which selection scoring is penalized."""

    def __init__(self, duration: float = 20.0):
        self.duration = duration
        self._until: Dict[str, float] = {}

    def start(self, name: str, now: float) -> None:
        self._until[name] = now + self.duration

    def remaining_fraction(self, name: str, now: float) -> float:
        """Remaining cooldown in [0, 1] (0 when not cooling down)."""
        until = self._until.get(name)
        if until is None or self.duration <= 0:
            return 0.0
        return float(np.clip((until - now) / self.duration, 0.0, 1.0))

    def clear(self) -> None:
        self._until.clear()


class PatternSelector:
    """
    Best-effort choice of one (template, particles) pair per search tick.
    """

    def __init__(
        self,
        library: PatternLibrary,
        matcher: ShapeMatcher,
        cooldowns: CooldownTable,
        rng: np.random.Generator,
        max_sampled_blocks: int = 24,
        top_k: int = 3,
        temperature: float = 0.15,
        active_penalty: float = 0.5,
        cooldown_penalty: float = 0.6,
        span_bias_exponent: float = 0.5,
        complexity_bias_exponent: float = 0.5,
    ):
        self.library = library
        self.matcher = matcher
        self.cooldowns = cooldowns
        self.rng = rng
        self.max_sampled_blocks = max_sampled_blocks
        self.top_k = top_k
        self.temperature = temperature
        self.active_penalty = active_penalty
        self.cooldown_penalty = cooldown_penalty
        self.span_bias_exponent = span_bias_exponent
        self.complexity_bias_exponent = complexity_bias_exponent

    def sample_blocks(self, blocks: List[Block]) -> List[Block]:
        """Random subset of at most max_sampled_blocks blocks."""
        if len(blocks) <= self.max_sampled_blocks:
            order = self.rng.permutation(len(blocks))
        else:
            order = self.rng.choice(len(blocks), size=self.max_sampled_blocks, replace=False)
        return [blocks[i] for i in order]

    def order_templates(self, active: Collection[str]) -> List[Template]:
        """
        Templates with no live instance first, each group shuffled.

        The order decides which templates are matched in the first frames
        of a round, and breaks exact ties in the final ranking: best matches
        are recorded in this order and the ranking sort is stable.
        """
        fresh = [t for t in self.library if t.name not in active]
        live = [t for t in self.library if t.name in active]
        self.rng.shuffle(fresh)
        self.rng.shuffle(live)
        return fresh + live

    def adjust_score(self, template: Template, score: float,
                     active: Collection[str], now: float) -> float:
        """Apply span/complexity bias, live-instance and cooldown penalties."""
        span_bias = (template.span / self.library.mean_span) ** self.span_bias_exponent
        complexity_bias = (self.library.mean_stars / template.star_count) ** self.complexity_bias_exponent

        adjusted = score / span_bias * complexity_bias
        if template.name in active:
            adjusted += self.active_penalty
        adjusted += self.cooldown_penalty * self.cooldowns.remaining_fraction(template.name, now)
        return adjusted


    def start_round(
        self,
        blocks: List[Block],
        ndc: np.ndarray,
        active: Collection[str],
    ) -> SearchRound:
        """Sample blocks and lay out every (template, block) pair to try."""
        sampled = self.sample_blocks(blocks)
        pairs = [
            (template, block)
            for template in self.order_templates(active)
            for block in sampled
            if block.size >= template.star_count
        ]
        return SearchRound(ndc=ndc, pairs=pairs, block_count=len(blocks))

    def advance(self, search_round: SearchRound, budget: Optional[int] = None) -> int:
        """
        Match the next pairs of a round.

        Args:
            search_round: Round to advance
            budget: Maximum number of pairs to match (None: all remaining)

        Returns:
            Number of pairs matched
        """
        stop = len(search_round.pairs) if budget is None else search_round.cursor + budget
        batch = search_round.pairs[search_round.cursor:stop]

        for template, block in batch:
            match = self.matcher.match(search_round.ndc, block.indices, template,
                                       block.centroid, block.extent)
            if match is None:
                continue
            current = search_round.best.get(template.name)
            if current is None or match.score < current.score:
                search_round.best[template.name] = match

        search_round.cursor += len(batch)
        return len(batch)

    def find_best_matches(
        self,
        blocks: List[Block],
        ndc: np.ndarray,
        active: Collection[str],
    ) -> Dict[str, Match]:
        """Best raw match per template across the sampled blocks."""
        search_round = self.start_round(blocks, ndc, active)
        self.advance(search_round)
        return search_round.best

    def choose(
        self,
        best: Dict[str, Match],
        active: Collection[str],
        now: float,
    ) -> Optional[Selection]:
        """Rank the best matches and draw one of the top_k by softmax."""
        if not best:
            return None

        ranked = sorted(
            (
                Selection(
                    template=self.library.get(name),
                    match=match,
                    adjusted_score=self.adjust_score(self.library.get(name), match.score, active, now),
                )
                for name, match in best.items()
            ),
            key=lambda s: s.adjusted_score,
        )[: self.top_k]

        scores = np.array([s.adjusted_score for s in ranked])
        weights = np.exp(-(scores - scores[0]) / self.temperature)
        weights /= weights.sum()

        choice = ranked[int(self.rng.choice(len(ranked), p=weights))]
        logger.debug(
            f"Selected {choice.template.name} "
            f"(raw={choice.match.score:.3f}, worst={choice.match.max_residual:.3f}, "
            f"adjusted={choice.adjusted_score:.3f}, "
            f"candidates={[s.template.name for s in ranked]})"
        )
        return choice

    def select(
        self,
        blocks: List[Block],
        ndc: np.ndarray,
        active: Collection[str],
        now: float,
    ) -> Optional[Selection]:
        """
        Choose one template and particle assignment in a single pass.

        Args:
            blocks: Candidate blocks for this tick
            ndc: (N, 2) screen positions from the spatial index
            active: Names of templates with a live instance
            now: Simulation time (for cooldowns)

        Returns:
            Selection, or None if nothing cleared the quality threshold
        """
        if not blocks:
            return None

        best = self.find_best_matches(blocks, ndc, active)
        if not best:
            logger.debug(f"No template matched across {len(blocks)} blocks")
            return None
        return self.choose(best, active, now)
