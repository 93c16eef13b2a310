"""Tests for fuzzy search ranking, cluster grouping and the keyboard cursor."""

import sys
import unittest
from pathlib import Path

# Add src to path so we can import transitsearch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from transitsearch.corpus_loader import CorpusLoader
from transitsearch.suggestions import SuggestionEngine, SuggestionList

from sample_corpus import corpus_data, point


class TestMatchRanking(unittest.TestCase):
    """Test the re-sorting of matcher results."""

    def setUp(self):
        """Set up test fixtures."""
        self.corpus = CorpusLoader()
        self.corpus.load_from_data(corpus_data())
        self.engine = SuggestionEngine(self.corpus)

    def test_blank_query_has_no_results(self):
        """Empty and whitespace-only queries match nothing."""
        self.assertEqual(self.engine.match(""), [])
        self.assertEqual(self.engine.match("   "), [])
        self.assertEqual(self.engine.search("  "), [])

    def test_equal_scores_sort_by_rank(self):
        """Among equally good matches the lower rank comes first."""
        matches = self.engine.match("Karakoy")
        karakoy = [(loc.id, score) for loc, score in matches if loc.name == "Karakoy"]
        self.assertEqual([loc_id for loc_id, _ in karakoy], ["C1", "C2"])
        self.assertEqual(karakoy[0][1], karakoy[1][1])

    def test_results_sorted_by_score_then_rank(self):
        """Better scores precede; ties are ordered by rank."""
        for query in ["Sirkeci", "Galata", "kara", "usk"]:
            matches = self.engine.match(query)
            self.assertTrue(matches, query)
            for (a, score_a), (b, score_b) in zip(matches, matches[1:]):
                self.assertLessEqual(score_a, score_b)
                if score_a == score_b:
                    self.assertLessEqual(a.rank, b.rank)

    def test_short_query_needs_whole_string_similarity(self):
        """A two-character id does not match names sharing a single letter."""
        self.assertEqual([loc.id for loc, _ in self.engine.match("A2")], ["A2"])
        self.assertNotIn("D1", [loc.id for loc, _ in self.engine.match("A1")])
        rows = self.engine.search("A2")
        self.assertNotIn("D1", [row.location.id for row in rows if row.location is not None])

    def test_matches_ids(self):
        """Identifiers are searchable as well as names."""
        matches = self.engine.match("A2")
        self.assertEqual(matches[0][0].id, "A2")
        self.assertAlmostEqual(matches[0][1], 0.0)


class TestClusterGrouping(unittest.TestCase):
    """Test grouping of clustered variants under one heading."""

    def setUp(self):
        """Set up test fixtures."""
        self.corpus = CorpusLoader()
        self.corpus.load_from_data(corpus_data())
        self.engine = SuggestionEngine(self.corpus)

    def test_member_match_pulls_in_header(self):
        """Matching only a member shows the header as a heading and all members."""
        rows = self.engine.search("A2")

        self.assertEqual(rows[0].kind, "header")
        self.assertEqual(rows[0].label, "Sirkeci")
        self.assertFalse(rows[0].selectable)

        options = [row for row in rows if row.selectable]
        self.assertEqual([row.location.id for row in options], ["A2", "A3"])
        self.assertFalse(options[0].synthetic)
        self.assertTrue(options[1].synthetic)
        self.assertEqual([row.option_index for row in options], [0, 1])

    def test_matched_header_renders_first(self):
        """A header that matched gets its own selectable row before its members."""
        rows = self.engine.search("A1")
        self.assertEqual(rows[0].kind, "header")
        options = [row for row in rows if row.selectable]
        self.assertEqual([row.location.id for row in options], ["A1", "A2", "A3"])
        self.assertFalse(options[0].synthetic)

    def test_duplicate_member_name_shows_rank_label(self):
        """A member named like its header is labelled by its rank only."""
        rows = self.engine.search("A2")
        a3 = [row for row in rows if row.location is not None and row.location.id == "A3"][0]
        self.assertEqual(a3.label, "stop")
        self.assertEqual(a3.sublabel, "")

        a2 = [row for row in rows if row.location is not None and row.location.id == "A2"][0]
        self.assertEqual(a2.label, "Sirkeci Iskelesi")
        self.assertEqual(a2.sublabel, "dock")

    def test_unranked_duplicate_member_shows_id(self):
        """A member repeating the header name without a rank label is shown by id."""
        corpus = CorpusLoader()
        corpus.load_from_data({"type": "FeatureCollection", "features": [
            {"id": "H1", "geometry": point(29.0, 41.0), "properties": {"name": "Eminonu", "rank": 4}},
            {"id": "H2", "geometry": point(29.001, 41.0), "properties": {"name": "EMINONU", "cluster": "H1"}},
        ]})
        rows = SuggestionEngine(corpus).search("H2")
        member = [row for row in rows if row.selectable][0]
        self.assertEqual(member.location.id, "H2")
        self.assertEqual(member.label, "H2")
        self.assertEqual(member.sublabel, "")

    def test_standalone_rows(self):
        """Locations outside any cluster show name and rank label."""
        rows = self.engine.search("B1")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].label, "Uskudar")
        self.assertEqual(rows[0].sublabel, "dock")
        self.assertTrue(rows[0].selectable)

    def test_cap_counts_selectable_rows_only(self):
        """Headings do not count against the suggestion cap."""
        engine = SuggestionEngine(self.corpus, max_suggestions=2)
        rows = engine.search("A1")
        self.assertEqual(len([row for row in rows if row.selectable]), 2)
        self.assertEqual(len(rows), 3)


class TestSuggestionList(unittest.TestCase):
    """Test keyboard cursor behaviour."""

    def setUp(self):
        """Set up test fixtures."""
        corpus = CorpusLoader()
        corpus.load_from_data(corpus_data())
        self.suggestions = SuggestionList()
        self.suggestions.show(SuggestionEngine(corpus).search("A1"))

    def test_cursor_wraps(self):
        """Down and Up wrap around the selectable rows."""
        self.assertEqual(self.suggestions.cursor, -1)
        self.assertEqual(self.suggestions.move(1), 0)
        self.assertEqual(self.suggestions.move(1), 1)
        self.assertEqual(self.suggestions.move(1), 2)
        self.assertEqual(self.suggestions.move(1), 0)
        self.assertEqual(self.suggestions.move(-1), 2)

    def test_current_defaults_to_first_option(self):
        """Without a cursor, Enter targets the first selectable row."""
        self.assertEqual(self.suggestions.current().location.id, "A1")
        self.suggestions.move(1)
        self.suggestions.move(1)
        self.assertEqual(self.suggestions.current().location.id, "A2")

    def test_clear(self):
        """Clearing closes the list and resets the cursor."""
        self.suggestions.move(1)
        self.suggestions.clear()
        self.assertFalse(self.suggestions.is_open)
        self.assertEqual(self.suggestions.cursor, -1)
        self.assertIsNone(self.suggestions.current())


if __name__ == "__main__":
    unittest.main()
