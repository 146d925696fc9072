"""
Loading import manifests into an RDF graph

Manifests are turtle/N3 files. Large manifests are split into ordered
``*.split.n3`` fragments by an external splitter before they reach us; the
fragments are parsed one at a time and merged into a single graph.
"""

from logging import getLogger
from pathlib import Path

from django.conf import settings
from django.db import models
from rdflib import RDF, Graph, URIRef
from rdflib.namespace import DCTERMS
from rdflib.term import Node

from filelibrary.logging import FileLibraryLogger

from .exceptions import ManifestMissingError

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

#: Location of a payload file, or the redirect target of a location
ADDRESSING_URL = URIRef("https://www.w3.org/Addressing/url")
BIBLIOGRAPHIC_RESOURCE = DCTERMS.BibliographicResource
LOCATION = URIRef("https://www.w3.org/TR/prov-o/#Location")
REFERENCES = DCTERMS.references


class GraphLoadStrategy(models.TextChoices):
    SINGLE_FILE = "single_file", "Single manifest file"
    SPLIT_AND_MERGE = "split_and_merge", "Split fragments merged in order"


MANIFEST_PATTERN = "*.n3"

FRAGMENT_PATTERNS = {
    GraphLoadStrategy.SINGLE_FILE: MANIFEST_PATTERN,
    GraphLoadStrategy.SPLIT_AND_MERGE: "*.split.n3",
}

#: Base for relative IRIs in manifests. Stripped again by lexical_form() so
#: relative references never pick up a server path.
MANIFEST_BASE = "urn:x-filelibrary:manifest/"


def lexical_form(term) -> str:
    """
    Return ``term`` as written in the manifest, undoing the resolution of
    relative IRIs against MANIFEST_BASE.
    """
    value = str(term)
    if value.startswith(MANIFEST_BASE):
        return value[len(MANIFEST_BASE) :]
    return value


def _term(value):
    if isinstance(value, Node):
        return value
    return URIRef(value)


class ManifestGraph:
    """
    A set of triples with the lookups the importer needs.

    The rdflib memory store indexes triples by subject, predicate and
    object, so type and predicate/value lookups don't scan the graph.
    Results are sorted so that resources are always visited in the same
    order for the same manifest.
    """

    def __init__(self, graph: Graph | None = None):
        self._graph = graph if graph is not None else Graph()

    @classmethod
    def from_triples(cls, triples) -> "ManifestGraph":
        manifest_graph = cls()
        for triple in triples:
            manifest_graph.add(triple)
        return manifest_graph

    @property
    def graph(self) -> Graph:
        return self._graph

    def __len__(self):
        return len(self._graph)

    def __iter__(self):
        return iter(self._graph)

    def __contains__(self, triple):
        return triple in self._graph

    def add(self, triple):
        subject, predicate, obj = triple
        self._graph.add((_term(subject), _term(predicate), obj))

    def merge(self, other) -> "ManifestGraph":
        """
        Add every triple of ``other`` (a ManifestGraph or an rdflib Graph).

        This is a set union: a triple present in both graphs is stored once
        and every distinct value of a multi-valued predicate is kept.
        """
        source = other.graph if isinstance(other, ManifestGraph) else other
        for triple in source:
            self._graph.add(triple)
        return self

    def all_of_type(self, type_uri) -> list:
        return sorted(set(self._graph.subjects(RDF.type, _term(type_uri))), key=str)

    def resources_matching(self, predicate, value) -> list:
        return sorted(
            set(self._graph.subjects(_term(predicate), _term(value))), key=str
        )

    def value(self, subject, predicate):
        """
        Return the object of ``subject``/``predicate``, or None.

        If the predicate has several values the lowest one is returned so the
        choice doesn't depend on parse order.
        """
        values = sorted(self._graph.objects(_term(subject), _term(predicate)), key=str)
        return values[0] if values else None


def trim_dangling_terminator(data: str) -> str:
    """
    Normalize the end of the last manifest fragment.

    The splitter may leave a stray statement terminator after the final
    statement. Trailing comments, whitespace and periods are removed and a
    single terminator is put back.
    """
    lines = data.rstrip().splitlines()
    while lines and (not lines[-1].strip() or lines[-1].lstrip().startswith("#")):
        lines.pop()

    trimmed = "\n".join(lines).rstrip(" \t\r\n.")
    if not trimmed:
        return ""
    return trimmed + "\n.\n"


class GraphLoader:
    def __init__(self, strategy=GraphLoadStrategy.SINGLE_FILE, manifest_format=None):
        self.strategy = GraphLoadStrategy(strategy)
        self.manifest_format = manifest_format or settings.IMPORTER.get(
            "MANIFEST_FORMAT", "turtle"
        )

    @staticmethod
    def find_files(directory, pattern) -> list[Path]:
        return sorted(
            (path for path in Path(directory).rglob(pattern) if path.is_file()),
            key=lambda path: (path.name, str(path)),
        )

    def list_fragments(self, directory) -> list[Path]:
        fragments = self.find_files(directory, FRAGMENT_PATTERNS[self.strategy])
        if self.strategy == GraphLoadStrategy.SINGLE_FILE:
            return fragments[:1]

        if not fragments:
            # Nothing was split, e.g. no splitter is configured
            fragments = self.find_files(directory, MANIFEST_PATTERN)
            if fragments:
                logger.warning(
                    "No split fragments in %s, loading %d unsplit manifest(s)",
                    directory,
                    len(fragments),
                )
        return fragments

    def parse_fragment(self, path: Path, *, last: bool = False) -> Graph:
        data = path.read_text(encoding="utf-8")
        if last:
            data = trim_dangling_terminator(data)
        fragment_graph = Graph()
        fragment_graph.parse(
            data=data, format=self.manifest_format, publicID=MANIFEST_BASE
        )
        return fragment_graph

    def load(self, directory) -> ManifestGraph:
        """
        Parse every manifest fragment in ``directory`` into one graph.

        A fragment which fails to parse is logged and skipped; the remaining
        fragments are still merged.

        Raises:
            ManifestMissingError: If there is no fragment at all.
        """
        fragments = self.list_fragments(directory)
        if not fragments:
            structured_logger.error(
                "Manifest file doesn't exist.",
                event_code="manifest_missing",
                reason=f"No files matching {FRAGMENT_PATTERNS[self.strategy]}",
                reason_code="no_manifest_fragments",
                directory=str(directory),
            )
            raise ManifestMissingError("Couldn't find manifest file in archive.")

        manifest_graph = ManifestGraph()
        last_index = len(fragments) - 1
        for index, fragment in enumerate(fragments):
            try:
                fragment_graph = self.parse_fragment(fragment, last=index == last_index)
            except Exception as exc:
                structured_logger.error(
                    "Failed to parse manifest fragment.",
                    event_code="manifest_fragment_parse_failed",
                    reason=str(exc),
                    reason_code="parse_error",
                    fragment=str(fragment),
                )
                continue
            manifest_graph.merge(fragment_graph)

        logger.info(
            "Loaded %d triples from %d manifest fragment(s) in %s",
            len(manifest_graph),
            len(fragments),
            directory,
        )
        return manifest_graph
