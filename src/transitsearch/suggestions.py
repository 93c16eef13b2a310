"""Fuzzy search over the location corpus with cluster-aware grouping."""

import logging
from typing import Dict, List, Optional, Tuple

from rapidfuzz import fuzz, process, utils

from .corpus_loader import CorpusLoader
from .labels import rank_label
from .models import Location, SuggestionRow

logger = logging.getLogger(__name__)

DEFAULT_MAX_SUGGESTIONS = 8
# Matches scoring worse than this (0 = perfect, 1 = no match) are dropped by the matcher
DEFAULT_THRESHOLD = 0.45
# Queries shorter than this are scored as whole strings, without partial matching
MIN_PARTIAL_QUERY_LENGTH = 3

Match = Tuple[Location, float]


class SuggestionEngine:
    """
    Ranks fuzzy matches over location names and ids, then groups them so a
    place and its named variants appear together under one heading.
    """

    def __init__(
        self,
        corpus: CorpusLoader,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
        threshold: float = DEFAULT_THRESHOLD,
    ):
        self.corpus = corpus
        self.max_suggestions = max_suggestions
        self.threshold = threshold
        self._names = [location.name for location in corpus.locations]
        self._ids = [location.id for location in corpus.locations]

    def match(self, query: str) -> List[Match]:
        """
        Run the fuzzy matcher and re-sort its results.

        Args:
            query: Text typed by the user.

        Returns:
            (location, score) pairs, best score first, then lowest rank first.
        """
        query = (query or "").strip()
        if not query:
            return []

        cutoff = (1.0 - self.threshold) * 100
        processed = utils.default_process(query)
        scorer = fuzz.WRatio if len(processed) >= MIN_PARTIAL_QUERY_LENGTH else fuzz.ratio
        best: Dict[int, float] = {}
        for choices in (self._names, self._ids):
            found = process.extract(
                query,
                choices,
                scorer=scorer,
                processor=utils.default_process,
                limit=None,
                score_cutoff=cutoff,
            )
            for _, similarity, position in found:
                score = 1.0 - similarity / 100.0
                if position not in best or score < best[position]:
                    best[position] = score

        locations = self.corpus.locations
        ranked = sorted(best.items(), key=lambda item: (item[1], locations[item[0]].rank, item[0]))
        logger.debug(f"Query {query!r} matched {len(ranked)} locations")
        return [(locations[position], score) for position, score in ranked]

    def search(self, query: str) -> List[SuggestionRow]:
        """Ranked, grouped suggestion rows for a query; empty for a blank query."""
        return self.group(self.match(query))

    def group(self, matches: List[Match]) -> List[SuggestionRow]:
        """
        Arrange ranked matches into rows.

        Clusters come first, in order of their first matching constituent; each has a
        non-selectable heading, the header's own row when it matched, then every
        member in corpus order. Standalone matches follow. Only selectable rows count
        against max_suggestions.
        """
        corpus = self.corpus
        matched = {id(location): score for location, score in matches}

        cluster_order: List[str] = []
        standalone: List[Match] = []
        for location, score in matches:
            if location.cluster is not None:
                key = location.cluster
            elif corpus.is_cluster_header(location):
                key = location.id
            else:
                standalone.append((location, score))
                continue
            if key not in cluster_order:
                cluster_order.append(key)

        rows: List[SuggestionRow] = []
        cap = self.max_suggestions

        def add_option(location: Location, label: str, sublabel: str) -> None:
            score = matched.get(id(location))
            rows.append(SuggestionRow(
                kind="option",
                label=label,
                sublabel=sublabel,
                location=location,
                option_index=sum(1 for row in rows if row.selectable),
                score=1.0 if score is None else score,
                synthetic=score is None,
            ))

        def remaining() -> int:
            return cap - sum(1 for row in rows if row.selectable)

        for header_id in cluster_order:
            if remaining() <= 0:
                break
            header = self._matched_header(header_id, matched)
            header_matched = header is not None
            if header is None:
                header = corpus.find_representative(header_id)

            heading = header.display_name if header is not None else header_id
            rows.append(SuggestionRow(
                kind="header",
                label=heading,
                sublabel=rank_label(header.rank) if header is not None else "",
                location=header,
            ))

            if header_matched:
                add_option(header, header.display_name, rank_label(header.rank))

            header_names = {name.casefold() for name in corpus.names_for_id(header_id)}
            for member in corpus.get_members(header_id):
                if remaining() <= 0:
                    break
                if member is header:
                    continue
                label = member.display_name
                sublabel = rank_label(member.rank)
                if member.name and member.name.casefold() in header_names:
                    # unranked duplicates have no rank label to show, so use the id
                    label, sublabel = sublabel or member.id, ""
                add_option(member, label, sublabel)

        for location, _ in standalone:
            if remaining() <= 0:
                break
            add_option(location, location.display_name, rank_label(location.rank))

        return rows

    def _matched_header(self, header_id: str, matched: Dict[int, float]) -> Optional[Location]:
        for location in self.corpus.locations_by_id.get(header_id, []):
            if location.cluster is None and id(location) in matched:
                return location
        return None


class SuggestionList:
    """Open suggestion rows for one role, with a keyboard cursor over selectable rows."""

    def __init__(self):
        """Initialize an empty, closed list."""
        self.rows: List[SuggestionRow] = []
        self.cursor = -1
        self.generation = 0

    @property
    def options(self) -> List[SuggestionRow]:
        """Selectable rows, in display order."""
        return [row for row in self.rows if row.selectable]

    @property
    def is_open(self) -> bool:
        """True while any rows are shown."""
        return bool(self.rows)

    def show(self, rows: List[SuggestionRow]) -> None:
        """Replace the shown rows and reset the cursor."""
        self.rows = list(rows)
        self.cursor = -1

    def clear(self) -> None:
        """Close the list."""
        self.rows = []
        self.cursor = -1

    def move(self, step: int) -> int:
        """Move the cursor by step, wrapping around; returns the new position."""
        count = len(self.options)
        if not count:
            return self.cursor
        if self.cursor == -1:
            self.cursor = 0 if step > 0 else count - 1
        else:
            self.cursor = (self.cursor + step) % count
        return self.cursor

    def option_at(self, index: int) -> Optional[SuggestionRow]:
        """Selectable row at an index, or None when out of range."""
        options = self.options
        if 0 <= index < len(options):
            return options[index]
        return None

    def current(self) -> Optional[SuggestionRow]:
        """The row Enter would select: the cursor row, else the first option."""
        if self.cursor >= 0:
            return self.option_at(self.cursor)
        return self.option_at(0)
