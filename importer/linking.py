import re
from logging import getLogger

from django.db import models

from filelibrary.logging import FileLibraryLogger
from filelibrary.models import ReferencingEntity

from .graph import REFERENCES

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

GUID_MARKER = "guid-"
UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


class MatchingStrategy(models.TextChoices):
    EXACT_ONE = "exact_one", "First entity with an equal UUID"
    PREFIX_FANOUT = "prefix_fanout", "Every entity whose UUID starts with the token"


def embedded_uuid(uri) -> str:
    """
    Return the UUID token embedded in a referencing node's URI.

    ``http://example.com/guid-4f3c...`` yields ``4f3c...``. URIs without the
    ``guid-`` marker yield the first canonical UUID they contain, and URIs
    without either are returned unchanged.
    """
    uri = str(uri)
    if GUID_MARKER in uri:
        token = uri.split(GUID_MARKER, 1)[1]
        token = re.split(r"[/?#]", token, maxsplit=1)[0]
        if token:
            return token

    match = UUID_RE.search(uri)
    if match:
        return match.group(0)

    return uri


class EntityLinker:
    def __init__(self, graph, strategy, entity_kinds):
        self.graph = graph
        self.strategy = MatchingStrategy(strategy)
        self.entity_kinds = list(entity_kinds)

    def find_entities(self, token) -> list[ReferencingEntity]:
        entities = ReferencingEntity.objects.filter(kind__in=self.entity_kinds)

        if self.strategy == MatchingStrategy.EXACT_ONE:
            entity = entities.filter(uuid=token).order_by("pk").first()
            return [entity] if entity else []

        return list(entities.filter(uuid__startswith=token).order_by("pk"))

    def attach(self, artifact_id, reference_url) -> list[ReferencingEntity]:
        """
        Attach ``artifact_id`` to every entity referencing ``reference_url``
        and return the entities whose file list changed.
        """
        updated = []
        for node in self.graph.resources_matching(REFERENCES, reference_url):
            token = embedded_uuid(node)
            entities = self.find_entities(token)
            if not entities:
                logger.debug(
                    "No %s entity matches %s for %s",
                    "/".join(self.entity_kinds),
                    token,
                    reference_url,
                )
                continue

            for entity in entities:
                if entity.attach_artifact(artifact_id):
                    structured_logger.info(
                        "Artifact attached to entity.",
                        event_code="artifact_attached",
                        entity=entity,
                        artifact_id=artifact_id,
                    )
                    updated.append(entity)
        return updated
