"""Tests for route annotation, itinerary building and node details."""

import random
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Add src to path so we can import transitsearch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from transitsearch.corpus_loader import CorpusLoader
from transitsearch.geo_client import GeoClientError
from transitsearch.models import Location, Selection
from transitsearch.route_pipeline import (
    LINE_PALETTE,
    NEUTRAL_COLORS,
    RoutePipeline,
    annotate_segments,
    parse_segments,
    resolve_node,
    water_color,
)

from sample_corpus import corpus_data, line, switch_route


def route_feature(source, target, mode, cost=1, line_name=None, **extra):
    props = {"source": source, "target": target, "mode": mode, "cost": cost}
    if line_name is not None:
        props["line"] = line_name
    props.update(extra)
    return {"type": "Feature", "geometry": line((0, 0), (1, 1)), "properties": props}


class TestSegmentAnnotation(unittest.TestCase):
    """Test parsing and colouring of route segments."""

    def test_parse_segments(self):
        """Mode codes become tags and negative costs are clamped."""
        segments = parse_segments({"features": [
            route_feature("A", "B", 11, cost=-4, line_name="L1"),
            {"properties": {"src": "B", "tgt": "C", "name": "L2", "mode": "Ferry"}},
        ]})
        self.assertEqual(segments[0].mode, "railway")
        self.assertEqual(segments[0].cost, 0)
        self.assertEqual(segments[1].source_id, "B")
        self.assertEqual(segments[1].line, "L2")
        self.assertEqual(segments[1].mode, "ferry")
        self.assertEqual([s.index for s in segments], [0, 1])

    def test_parse_rejects_invalid_payload(self):
        """Test error handling for a payload without features."""
        with self.assertRaises(GeoClientError):
            parse_segments({"type": "FeatureCollection"})
        with self.assertRaises(GeoClientError):
            parse_segments(None)

    def test_neutral_and_water_colours(self):
        segments = annotate_segments(parse_segments({"features": [
            route_feature("A", "B", 0),
            route_feature("B", "C", 3),
            route_feature("C", "D", 13),
            route_feature("D", "C", 14),
        ]}), random.Random(0))
        self.assertEqual(segments[0].color, NEUTRAL_COLORS["walk"])
        self.assertEqual(segments[1].color, NEUTRAL_COLORS["connection"])
        self.assertEqual(segments[2].color, water_color("C", "D"))
        # direction does not change the water colour
        self.assertEqual(segments[3].color, segments[2].color)

    def test_one_colour_per_line(self):
        """Segments of the same line share a colour; different lines differ."""
        segments = annotate_segments(parse_segments({"features": [
            route_feature("A", "B", 11, line_name="Orient"),
            route_feature("B", "C", 10, line_name="T1"),
            route_feature("C", "D", 11, line_name="Orient"),
        ]}), random.Random(0))
        self.assertEqual(segments[0].color, segments[2].color)
        self.assertNotEqual(segments[0].color, segments[1].color)
        for segment in segments:
            self.assertIn(segment.color, LINE_PALETTE)

    def test_colour_override(self):
        segments = annotate_segments(parse_segments({"features": [
            route_feature("A", "B", 11, colour="#123456"),
        ]}))
        self.assertEqual(segments[0].color, "#123456")


class TestItinerary(unittest.TestCase):
    """Test itinerary rows built from a route."""

    def setUp(self):
        """Set up test fixtures."""
        self.corpus = CorpusLoader()
        self.corpus.load_from_data(corpus_data())
        self.pipeline = RoutePipeline(self.corpus, rng=random.Random(0))

    def build(self, payload, selection=None):
        ticket = self.pipeline.begin("A1", "B1")
        route = self.pipeline.complete(ticket, payload)
        return route, self.pipeline.itinerary(route, selection)

    def test_switch_collapses_into_node_label(self):
        """A line change shows up as the rank label of the place, not as a row."""
        route, itinerary = self.build(switch_route())

        self.assertEqual([step.kind for step in itinerary.steps],
                         ["node", "segment", "node", "segment", "node"])
        first, via, last = itinerary.node_steps
        self.assertEqual((first.label, first.rank_label, first.position), ("Sirkeci", "station", "source"))
        self.assertEqual((via.label, via.rank_label, via.position), ("Karakoy", "stop", "via"))
        self.assertEqual((last.label, last.rank_label, last.position), ("Uskudar", "dock", "destination"))

        self.assertEqual([s.cost_text for s in itinerary.segment_steps], ["5 minutes", "3 minutes"])
        self.assertEqual([s.segment_index for s in itinerary.segment_steps], [0, 2])
        self.assertEqual(itinerary.summary_from, "Sirkeci")
        self.assertEqual(itinerary.summary_to, "Uskudar")
        self.assertEqual(itinerary.total_text, "8 minutes")
        self.assertEqual(len(route.segments), 3)

    def test_switch_only_route(self):
        _, itinerary = self.build({"features": [
            route_feature("C1", "C1", 10, cost=0, line_name="switch"),
        ]})
        self.assertEqual(len(itinerary.steps), 1)
        self.assertEqual(itinerary.steps[0].label, "Karakoy")
        self.assertEqual(itinerary.steps[0].rank_label, "stop")

    def test_empty_route(self):
        _, itinerary = self.build({"features": []})
        self.assertEqual(itinerary.steps, [])
        self.assertEqual(itinerary.total_text, "")

    def test_selection_wins_over_corpus(self):
        """Node labels prefer the location the user actually selected."""
        chosen = Location(id="A1", name="Sirkeci Gari", rank=4)
        self.assertIs(resolve_node("A1", self.corpus, Selection(start=chosen)), chosen)
        _, itinerary = self.build(switch_route(), Selection(start=chosen))
        self.assertEqual(itinerary.summary_from, "Sirkeci Gari")

    def test_unknown_node_uses_id(self):
        _, itinerary = self.build({"features": [route_feature("Z9", "B1", 0)]})
        self.assertEqual(itinerary.summary_from, "Z9")


class TestRouteRequests(unittest.TestCase):
    """Test request superseding."""

    def setUp(self):
        """Set up test fixtures."""
        self.corpus = CorpusLoader()
        self.corpus.load_from_data(corpus_data())
        self.client = MagicMock()
        self.pipeline = RoutePipeline(self.corpus, self.client)

    def test_stale_ticket_is_dropped(self):
        """Only the latest request may complete."""
        old = self.pipeline.begin("A1", "B1")
        new = self.pipeline.begin("A1", "C1")
        self.assertIsNone(self.pipeline.complete(old, switch_route()))
        self.assertIsNotNone(self.pipeline.complete(new, switch_route()))

        self.pipeline.invalidate()
        self.assertFalse(self.pipeline.is_current(new))

    def test_fetch_passes_year(self):
        self.client.fetch_route.return_value = switch_route()
        ticket = self.pipeline.begin("A1", "B1")
        self.assertEqual(self.pipeline.fetch(ticket), switch_route())
        self.client.fetch_route.assert_called_once_with("A1", "B1", 1914)

    def test_fetch_without_client(self):
        pipeline = RoutePipeline(self.corpus)
        with self.assertRaises(GeoClientError):
            pipeline.fetch(pipeline.begin("A1", "B1"))


class TestNodeDetails(unittest.TestCase):
    """Test lazily loaded alternate names."""

    def setUp(self):
        """Set up test fixtures."""
        self.corpus = CorpusLoader()
        self.corpus.load_from_data(corpus_data())
        self.client = MagicMock()
        self.client.fetch_node_detail.return_value = {
            "names": [{"name": "Galata", "lang": "en"}, {"name": "Γαλατάς", "lang": "el"}],
            "lines": ["T1"],
        }
        self.pipeline = RoutePipeline(self.corpus, self.client)

    def test_corpus_names_without_client(self):
        """Names sharing the id are listed, minus the primary name."""
        detail = RoutePipeline(self.corpus).expand_node("D1", "Galata Kulesi")
        self.assertEqual([n.name for n in detail.alternate_names], ["Galata"])
        self.assertFalse(detail.failed)

    def test_remote_names_are_merged_and_cached(self):
        detail = self.pipeline.expand_node("D1", "Galata Kulesi")
        self.assertEqual([n.name for n in detail.alternate_names], ["Galata", "Γαλατάς"])
        self.assertEqual(detail.alternate_names[1].lang, "el")
        self.assertEqual(detail.lines, ["T1"])

        self.assertIs(self.pipeline.expand_node("D1"), detail)
        self.client.fetch_node_detail.assert_called_once_with("D1", 1914)

    def test_failure_marks_only_that_node(self):
        """Test error handling when the detail request fails."""
        self.client.fetch_node_detail.side_effect = GeoClientError("boom")
        detail = self.pipeline.expand_node("D1", "Galata")
        self.assertTrue(detail.failed)
        self.assertEqual([n.name for n in detail.alternate_names], ["Galata Kulesi"])

        # failures are not cached, so a retry goes back to the service
        self.client.fetch_node_detail.side_effect = None
        self.assertFalse(self.pipeline.expand_node("D1", "Galata").failed)

    def test_year_change_invalidates_details(self):
        self.pipeline.expand_node("D1")
        self.pipeline.set_year(1920)
        self.pipeline.expand_node("D1")
        self.assertEqual(self.client.fetch_node_detail.call_count, 2)
        self.client.clear_cache.assert_called_once()

    def test_year_change_during_fetch_is_not_cached(self):
        def change_year(location_id, year):
            self.pipeline.set_year(1930)
            return {"names": [], "lines": []}

        self.client.fetch_node_detail.side_effect = change_year
        self.pipeline.expand_node("C1")
        self.client.fetch_node_detail.side_effect = None
        self.pipeline.expand_node("C1")
        self.assertEqual(self.client.fetch_node_detail.call_count, 2)


if __name__ == "__main__":
    unittest.main()
