from dataclasses import dataclass
from logging import getLogger

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from filelibrary.logging import FileLibraryLogger

from .archive import ArchiveExtractor
from .exceptions import ImportFailure
from .filestore import FileStore
from .graph import GraphLoader, GraphLoadStrategy
from .linking import EntityLinker, MatchingStrategy
from .redirects import RedirectQueue
from .resolver import ImportResult, ResourceResolver

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

SPLIT_FRAGMENT_SUFFIX = ".split.n3"


@dataclass(frozen=True)
class ImportProfile:
    name: str
    matching: MatchingStrategy
    entity_kinds: tuple
    graph_loading: GraphLoadStrategy
    storage_prefix: str
    media_type: str
    import_locations: bool

    @classmethod
    def from_settings(cls, name=None) -> "ImportProfile":
        if name is None:
            name = settings.IMPORTER["DEFAULT_PROFILE"]

        try:
            profile = settings.IMPORTER_PROFILES[name]
        except KeyError:
            raise ImproperlyConfigured(
                "Unknown import profile %r, expected one of %s"
                % (name, ", ".join(sorted(settings.IMPORTER_PROFILES)))
            ) from None

        return cls(
            name=name,
            matching=MatchingStrategy(profile["matching"]),
            entity_kinds=tuple(profile["entity_kinds"]),
            graph_loading=GraphLoadStrategy(profile["graph_loading"]),
            storage_prefix=profile["storage_prefix"],
            media_type=profile.get("media_type", "file"),
            import_locations=profile.get("import_locations", False),
        )


class ImportPipeline:
    """
    Runs one archive import from extraction to queued redirect tasks.

    Profiles decide how the manifest is loaded, how payloads are matched to
    entities and whether location resources are imported. Any ImportFailure
    stops the run; work done for earlier resources is kept.
    """

    def __init__(
        self,
        profile=None,
        *,
        file_store=None,
        queue=None,
        extractor=None,
        clock=timezone.now,
        logger=None,
    ):
        if not isinstance(profile, ImportProfile):
            profile = ImportProfile.from_settings(profile)
        self.profile = profile
        self.clock = clock
        self.file_store = file_store or FileStore(
            profile.storage_prefix, media_type=profile.media_type
        )
        self.queue = queue or RedirectQueue(clock=clock)
        self.extractor = extractor or ArchiveExtractor(clock=clock)
        self.logger = logger or structured_logger
        self.retain_working_directories = settings.IMPORTER.get(
            "RETAIN_WORKING_DIRECTORIES", False
        )

    def split_manifests(self, working_directory):
        for manifest in self.extractor.find_manifests(working_directory):
            if not manifest.name.endswith(SPLIT_FRAGMENT_SUFFIX):
                self.extractor.split(manifest)

    def load_graph(self, working_directory):
        if self.profile.graph_loading == GraphLoadStrategy.SPLIT_AND_MERGE:
            self.split_manifests(working_directory)
        return GraphLoader(self.profile.graph_loading).load(working_directory)

    def resolve(self, graph, working_directory, owner_id) -> ImportResult:
        linker = EntityLinker(graph, self.profile.matching, self.profile.entity_kinds)
        resolver = ResourceResolver(
            graph,
            working_directory,
            file_store=self.file_store.for_run(working_directory.name),
            linker=linker,
            queue=self.queue,
            owner_id=owner_id,
            include_locations=self.profile.import_locations,
        )
        return resolver.resolve()

    def release_working_directory(self, working_directory):
        if self.retain_working_directories:
            logger.info("Retaining working directory %s", working_directory)
            return
        self.extractor.cleanup(working_directory)

    def run(self, archive_path, owner_id=None) -> ImportResult:
        """
        Import ``archive_path`` on behalf of the user ``owner_id``.

        Raises:
            ImportFailure: If the run had to be abandoned.
        """
        run_logger = self.logger.bind(
            profile=self.profile.name, archive_path=str(archive_path), owner_id=owner_id
        )
        run_logger.info("Import started.", event_code="import_started")

        try:
            working_directory = self.extractor.extract(archive_path)
        except ImportFailure as exc:
            run_logger.error(
                "Import failed.",
                event_code="import_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
            )
            raise

        try:
            graph = self.load_graph(working_directory)
            result = self.resolve(graph, working_directory, owner_id)
        except ImportFailure as exc:
            run_logger.error(
                "Import failed.",
                event_code="import_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                working_directory=str(working_directory),
            )
            raise
        finally:
            self.release_working_directory(working_directory)

        run_logger.info(
            "Import finished.",
            event_code="import_finished",
            imported=result.imported_count,
            failed=result.failed_count,
            invalid_urls=len(result.invalid_urls),
        )
        return result
