import json
import zipfile
from pathlib import Path

from configuration.models import Configuration
from filelibrary.models import Artifact, ReferencingEntity
from importer.models import RedirectTask

MANIFEST_PREFIXES = """\
@prefix dcterms: <http://purl.org/dc/terms/> .
@prefix addr: <https://www.w3.org/Addressing/> .
@prefix prov: <https://www.w3.org/TR/prov-o/#> .
"""


def bibliographic_resource(uri, location):
    return '<%s> a dcterms:BibliographicResource ;\n    addr:url "%s" .\n' % (
        uri,
        location,
    )


def location_resource(uri, redirect_url=None):
    if redirect_url is None:
        return "<%s> a prov:Location .\n" % uri
    return '<%s> a prov:Location ;\n    addr:url "%s" .\n' % (uri, redirect_url)


def reference(node_uri, reference_url):
    return "<%s> dcterms:references <%s> .\n" % (node_uri, reference_url)


def build_manifest(*statements):
    return MANIFEST_PREFIXES + "\n" + "".join(statements)


def build_archive(directory, files, name="import.zip"):
    """
    Write a zip archive to ``directory`` containing ``files`` (a mapping of
    archive member name to str or bytes content) and return its path.
    """
    archive_path = Path(directory) / name
    with zipfile.ZipFile(archive_path, "w") as archive:
        for member, content in files.items():
            archive.writestr(member, content)
    return archive_path


def create_entity(*, kind="integration", uuid="1234abcd", **kwargs):
    return ReferencingEntity.objects.create(kind=kind, uuid=uuid, **kwargs)


def create_artifact(
    *, filename="payload.txt", origin_url="https://example.org/doc/1", **kwargs
):
    artifact = Artifact(filename=filename, origin_url=origin_url, **kwargs)
    artifact.file.name = "integration-files/test/%s" % filename
    artifact.save()
    return artifact


def create_redirect_task(
    *,
    real_url="https://example.org/doc/1",
    redirect_url="https://files.example.org/media/payload.txt",
    **kwargs,
):
    return RedirectTask.objects.create(
        real_url=real_url, redirect_url=redirect_url, **kwargs
    )


def configure_redirect_service(**values):
    """
    Update the redirect service record. Saving goes through the post_save
    signal, so the cached value is refreshed as well.
    """
    record = Configuration.objects.get(key="redirect_service")
    data = {
        "production_url": "https://redirects.example.com/",
        "staging_url": "https://staging-redirects.example.com",
        "service_name": "filelibrary",
        "hash": "s3cr3t",
    }
    data.update(values)
    record.value = json.dumps(data)
    record.save()
    return data
