# Hey future me - this is the fingerprint matcher for imported tracks!
#
# NetEase/QQ tracks have NO id we can use on the remote platform. All we have is a
# title and a duration (plus artists, sometimes). So we search the remote platform
# and score each hit:
#
#   title    → LCS length / longer cleaned title   (0..1)
#   duration → Gaussian exp(-Δ²/2σ²), σ=4s         (3s ≈ 0.76, 10s ≈ 0.04)
#   score    = 0.4 * title + 0.6 * duration
#              (x1.1 for a priority category, +0.1 if the artist shows up in the title)
#
# Hits from a blocked category (cover or MAD upload zones, say) are dropped before
# scoring, same as hits more than 180s off.
#
# Duration is weighted HIGHER than title on purpose: "Song (Live)" at 201s is a much
# better match for a 203s "Song" than a studio "Song" at 250s.
"""Fingerprint matcher - scores remote search hits against an external track."""

import logging
import math
import re

from rapidfuzz.distance import LCSseq

from playmirror.config import MatchingSettings
from playmirror.domain.entities import (
    MANUAL_MATCH_SCORE,
    ExternalTrack,
    MatchCandidate,
    MatchResult,
    MatchStatus,
    RemoteCandidate,
)
from playmirror.domain.exceptions import NoMatchError

logger = logging.getLogger(__name__)

# Anything that is not a Unicode letter or digit (str patterns are Unicode-aware,
# so CJK ideographs survive)
_NON_ALNUM = re.compile(r"[\W_]+")


def clean_title(value: str | None) -> str:
    """Lowercase and strip everything except letters and digits."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value.lower())


class TrackMatcher:
    """Ranks remote candidates for one external track.

    Usage:
        matcher = TrackMatcher(settings.matching)
        result = matcher.match(external_track, await api.search(query))
    """

    def __init__(self, settings: MatchingSettings | None = None) -> None:
        self._settings = settings or MatchingSettings()

    @property
    def settings(self) -> MatchingSettings:
        return self._settings

    def title_similarity(self, a: str, b: str) -> float:
        """LCS similarity of the cleaned titles, 0.0 when either is empty."""
        clean_a, clean_b = clean_title(a), clean_title(b)
        if not clean_a or not clean_b:
            return 0.0
        return LCSseq.similarity(clean_a, clean_b) / max(len(clean_a), len(clean_b))

    def duration_similarity(self, source: float | None, candidate: float | None) -> float | None:
        """Gaussian closeness of two durations in seconds.

        None when the source has no duration (duration is then ignored entirely).
        A candidate without a duration scores 0 against a source that has one.
        """
        if source is None:
            return None
        if candidate is None:
            return 0.0
        delta = source - candidate
        sigma = self._settings.duration_sigma
        return math.exp(-(delta * delta) / (2 * sigma * sigma))

    def _artist_in_title(self, source: ExternalTrack, candidate: RemoteCandidate) -> bool:
        cleaned_candidate = clean_title(candidate.title)
        if not cleaned_candidate:
            return False
        for artist in source.artists:
            cleaned_artist = clean_title(artist)
            if cleaned_artist and cleaned_artist in cleaned_candidate:
                return True
        return False

    def score(self, source: ExternalTrack, candidate: RemoteCandidate, rank: int) -> MatchCandidate:
        """Score one candidate. rank is its position in the upstream results."""
        settings = self._settings
        title_score = self.title_similarity(source.title, candidate.title)
        duration_score = self.duration_similarity(source.duration, candidate.duration)

        if duration_score is None:
            combined = title_score
        else:
            combined = (
                settings.title_weight * title_score
                + settings.duration_weight * duration_score
            )

        if candidate.category is not None and candidate.category in settings.priority_categories:
            combined *= settings.priority_boost

        if self._artist_in_title(source, candidate):
            combined += settings.artist_bonus
        combined = min(1.0, combined)

        delta = None
        if source.duration is not None and candidate.duration is not None:
            delta = abs(source.duration - candidate.duration)

        return MatchCandidate(
            candidate=candidate,
            score=combined,
            title_score=title_score,
            duration_score=duration_score,
            rank=rank,
            duration_delta=delta,
        )

    def rank(
        self, source: ExternalTrack, candidates: list[RemoteCandidate]
    ) -> list[MatchCandidate]:
        """Score, hard-filter and sort candidates (best first).

        Hits from a blocked category never get scored. Ties on score keep the
        upstream order - the first listed wins.
        """
        blocked = self._settings.blocked_categories
        scored = [
            self.score(source, candidate, rank)
            for rank, candidate in enumerate(candidates)
            if candidate.category is None or candidate.category not in blocked
        ]
        max_delta = self._settings.max_duration_delta
        kept = [
            scored_candidate
            for scored_candidate in scored
            if scored_candidate.duration_delta is None
            or scored_candidate.duration_delta <= max_delta
        ]
        kept.sort(key=lambda scored_candidate: (-scored_candidate.score, scored_candidate.rank))
        return kept

    def _choose(self, ranked: list[MatchCandidate]) -> MatchCandidate:
        # Prefer a near-exact duration inside the top K over a higher-scored one outside it
        window = self._settings.exact_duration_window
        for scored_candidate in ranked[: self._settings.top_k]:
            delta = scored_candidate.duration_delta
            if delta is not None and delta <= window:
                return scored_candidate
        return ranked[0]

    def match(self, source: ExternalTrack, candidates: list[RemoteCandidate]) -> MatchResult:
        """Pick the best remote candidate for source.

        Never raises for "nothing found" - that's an UNMATCHED result.
        """
        settings = self._settings
        try:
            if not candidates:
                raise NoMatchError(source.title)
            ranked = self.rank(source, candidates)
            if not ranked:
                raise NoMatchError(
                    source.title,
                    reason="every candidate outside the duration window or in a blocked category",
                )
        except NoMatchError as e:
            logger.debug("No match for '%s': %s", source.title, e.reason)
            return MatchResult(
                source_track=source,
                best_candidate=None,
                score=0.0,
                status=MatchStatus.UNMATCHED,
                error=e.message,
            )

        chosen = self._choose(ranked)
        runner_up = next(
            (scored_candidate for scored_candidate in ranked if scored_candidate is not chosen),
            None,
        )

        if chosen.score < settings.min_score:
            status = MatchStatus.UNMATCHED
        elif chosen.score < settings.accept_score or (
            runner_up is not None and runner_up.score >= chosen.score - settings.ambiguity_margin
        ):
            status = MatchStatus.AMBIGUOUS
        else:
            status = MatchStatus.MATCHED

        return MatchResult(
            source_track=source,
            best_candidate=chosen.candidate,
            score=chosen.score,
            status=status,
            candidates=tuple(ranked),
        )

    def override(self, result: MatchResult, candidate: RemoteCandidate) -> MatchResult:
        """User picked a candidate by hand - skip scoring, mark as manual match."""
        return MatchResult(
            source_track=result.source_track,
            best_candidate=candidate,
            score=MANUAL_MATCH_SCORE,
            status=MatchStatus.MATCHED,
            candidates=result.candidates,
            manual=True,
        )
