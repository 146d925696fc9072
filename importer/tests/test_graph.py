import tempfile
from pathlib import Path
from unittest import mock

from django.test import TestCase
from rdflib import RDF, Graph, Literal, URIRef

from importer.exceptions import ManifestMissingError
from importer.graph import (
    ADDRESSING_URL,
    BIBLIOGRAPHIC_RESOURCE,
    LOCATION,
    REFERENCES,
    GraphLoader,
    GraphLoadStrategy,
    ManifestGraph,
    lexical_form,
    trim_dangling_terminator,
)

from .utils import bibliographic_resource, build_manifest, location_resource

DOC_1 = URIRef("https://example.org/doc/1")
DOC_2 = URIRef("https://example.org/doc/2")


class ManifestGraphTests(TestCase):
    def test_merge_is_set_union(self):
        first = ManifestGraph.from_triples(
            [
                (DOC_1, RDF.type, BIBLIOGRAPHIC_RESOURCE),
                (DOC_1, ADDRESSING_URL, Literal("file:///a.txt")),
            ]
        )
        second = ManifestGraph.from_triples(
            [
                (DOC_1, RDF.type, BIBLIOGRAPHIC_RESOURCE),
                (DOC_1, ADDRESSING_URL, Literal("file:///b.txt")),
                (DOC_2, RDF.type, LOCATION),
            ]
        )
        union = set(first) | set(second)

        first.merge(second)

        self.assertEqual(len(first), len(union))
        self.assertEqual(len(first), 4)
        self.assertEqual(
            sorted(first.graph.objects(DOC_1, ADDRESSING_URL)),
            [Literal("file:///a.txt"), Literal("file:///b.txt")],
        )

    def test_merge_accepts_rdflib_graph(self):
        graph = Graph()
        graph.add((DOC_2, RDF.type, LOCATION))

        manifest_graph = ManifestGraph().merge(graph)

        self.assertIn((DOC_2, RDF.type, LOCATION), manifest_graph)

    def test_all_of_type_is_sorted(self):
        manifest_graph = ManifestGraph.from_triples(
            [
                (DOC_2, RDF.type, BIBLIOGRAPHIC_RESOURCE),
                (DOC_1, RDF.type, BIBLIOGRAPHIC_RESOURCE),
                (URIRef("https://example.org/loc/1"), RDF.type, LOCATION),
            ]
        )

        self.assertEqual(
            manifest_graph.all_of_type(BIBLIOGRAPHIC_RESOURCE), [DOC_1, DOC_2]
        )
        self.assertEqual(
            manifest_graph.all_of_type(str(LOCATION)),
            [URIRef("https://example.org/loc/1")],
        )

    def test_resources_matching(self):
        node = URIRef("http://www.example.com/guid-1234abcd")
        manifest_graph = ManifestGraph.from_triples(
            [
                (node, REFERENCES, DOC_1),
                (URIRef("http://www.example.com/guid-other"), REFERENCES, DOC_2),
            ]
        )

        self.assertEqual(
            manifest_graph.resources_matching(REFERENCES, str(DOC_1)), [node]
        )
        self.assertEqual(
            manifest_graph.resources_matching(REFERENCES, "https://example.org/x"), []
        )

    def test_value(self):
        manifest_graph = ManifestGraph.from_triples(
            [(DOC_1, ADDRESSING_URL, Literal("file:///a.txt"))]
        )

        self.assertEqual(
            manifest_graph.value(DOC_1, ADDRESSING_URL), Literal("file:///a.txt")
        )
        self.assertIsNone(manifest_graph.value(DOC_2, ADDRESSING_URL))


class TrimDanglingTerminatorTests(TestCase):
    def test_dangling_terminator_is_removed(self):
        self.assertEqual(
            trim_dangling_terminator('<a:b> <c:d> "e" .\n.\n\t \n'),
            '<a:b> <c:d> "e"\n.\n',
        )

    def test_missing_terminator_is_added(self):
        self.assertEqual(
            trim_dangling_terminator('<a:b> <c:d> "e"'), '<a:b> <c:d> "e"\n.\n'
        )

    def test_trailing_comments_are_ignored(self):
        self.assertEqual(
            trim_dangling_terminator('<a:b> <c:d> "e" .\n# the end\n'),
            '<a:b> <c:d> "e"\n.\n',
        )

    def test_empty_fragment(self):
        self.assertEqual(trim_dangling_terminator(" .\n\n"), "")


class GraphLoaderTests(TestCase):
    def setUp(self):
        temporary_directory = tempfile.TemporaryDirectory()
        self.addCleanup(temporary_directory.cleanup)
        self.directory = Path(temporary_directory.name)

    def write(self, name, content):
        path = self.directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def test_single_file(self):
        self.write(
            "manifest.n3",
            build_manifest(
                bibliographic_resource(DOC_1, "file:///payload.txt"),
                location_resource(DOC_2, "https://example.org/target"),
            ),
        )

        graph = GraphLoader(GraphLoadStrategy.SINGLE_FILE).load(self.directory)

        self.assertEqual(graph.all_of_type(BIBLIOGRAPHIC_RESOURCE), [DOC_1])
        self.assertEqual(graph.all_of_type(LOCATION), [DOC_2])
        self.assertEqual(
            str(graph.value(DOC_2, ADDRESSING_URL)), "https://example.org/target"
        )

    def test_single_file_uses_first_manifest(self):
        self.write("b.n3", build_manifest(bibliographic_resource(DOC_2, "file:///b")))
        self.write(
            "nested/a.n3", build_manifest(bibliographic_resource(DOC_1, "file:///a"))
        )

        graph = GraphLoader("single_file").load(self.directory)

        self.assertEqual(graph.all_of_type(BIBLIOGRAPHIC_RESOURCE), [DOC_1])

    def test_split_and_merge_with_dangling_terminator(self):
        self.write(
            "manifest.0001.split.n3",
            build_manifest(bibliographic_resource(DOC_1, "file:///a.txt")),
        )
        # The splitter leaves a stray terminator at the end of the last fragment
        self.write(
            "manifest.0002.split.n3",
            build_manifest(bibliographic_resource(DOC_2, "file:///b.txt")) + ".\n\n",
        )
        self.write("manifest.n3", "this is not loaded in split mode")

        graph = GraphLoader(GraphLoadStrategy.SPLIT_AND_MERGE).load(self.directory)

        self.assertEqual(graph.all_of_type(BIBLIOGRAPHIC_RESOURCE), [DOC_1, DOC_2])

    def test_duplicate_triples_across_fragments(self):
        statement = build_manifest(bibliographic_resource(DOC_1, "file:///a.txt"))
        self.write("m.0001.split.n3", statement)
        self.write("m.0002.split.n3", statement)

        graph = GraphLoader(GraphLoadStrategy.SPLIT_AND_MERGE).load(self.directory)

        self.assertEqual(len(graph), 2)

    def test_unparseable_fragment_is_skipped(self):
        self.write("m.0001.split.n3", "<broken <turtle")
        self.write(
            "m.0002.split.n3",
            build_manifest(bibliographic_resource(DOC_2, "file:///b.txt")),
        )

        with mock.patch("importer.graph.structured_logger") as structured_logger:
            graph = GraphLoader(GraphLoadStrategy.SPLIT_AND_MERGE).load(
                self.directory
            )

        self.assertEqual(graph.all_of_type(BIBLIOGRAPHIC_RESOURCE), [DOC_2])
        structured_logger.error.assert_called_once()
        self.assertEqual(
            structured_logger.error.call_args.kwargs["event_code"],
            "manifest_fragment_parse_failed",
        )

    def test_unsplit_manifest_is_loaded_without_fragments(self):
        self.write(
            "errors.n3", build_manifest(bibliographic_resource(DOC_1, "file:///a.txt"))
        )

        graph = GraphLoader(GraphLoadStrategy.SPLIT_AND_MERGE).load(self.directory)

        self.assertEqual(graph.all_of_type(BIBLIOGRAPHIC_RESOURCE), [DOC_1])

    def test_no_fragments(self):
        with self.assertRaises(ManifestMissingError):
            GraphLoader(GraphLoadStrategy.SPLIT_AND_MERGE).load(self.directory)

    def test_relative_iris_do_not_expose_manifest_path(self):
        self.write(
            "manifest.n3", build_manifest(bibliographic_resource("not-a-url", "a.txt"))
        )

        graph = GraphLoader(GraphLoadStrategy.SINGLE_FILE).load(self.directory)

        [resource] = graph.all_of_type(BIBLIOGRAPHIC_RESOURCE)
        self.assertEqual(lexical_form(resource), "not-a-url")
        self.assertNotIn(str(self.directory), str(resource))

    def test_no_manifest(self):
        with self.assertRaisesMessage(
            ManifestMissingError, "Couldn't find manifest file in archive."
        ):
            GraphLoader(GraphLoadStrategy.SINGLE_FILE).load(self.directory)

    def test_fragment_order(self):
        self.write("b.split.n3", "")
        self.write("a.split.n3", "")

        fragments = GraphLoader(GraphLoadStrategy.SPLIT_AND_MERGE).list_fragments(
            self.directory
        )

        self.assertEqual([path.name for path in fragments], ["a.split.n3", "b.split.n3"])
