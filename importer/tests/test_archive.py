import subprocess  # nosec B404
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from django.test import TestCase

from importer.archive import RUN_DIRECTORY_PREFIX, ArchiveExtractor
from importer.exceptions import ExtractionError, ManifestMissingError

from .utils import build_archive


class ArchiveExtractorTests(TestCase):
    def setUp(self):
        temporary_directory = tempfile.TemporaryDirectory()
        self.addCleanup(temporary_directory.cleanup)
        self.root = Path(temporary_directory.name)
        self.working_directory = self.root / "work"
        self.extractor = ArchiveExtractor(
            working_directory=self.working_directory,
            splitter_path="/opt/splitter",
            splitter_timeout=5,
            clock=lambda: datetime(2024, 3, 1, 12, 30, 45, tzinfo=timezone.utc),
        )

    def test_extract(self):
        archive_path = build_archive(
            self.root, {"manifest.n3": "", "files/payload.txt": "payload"}
        )

        run_directory = self.extractor.extract(archive_path)

        self.assertEqual(run_directory.parent, self.working_directory)
        self.assertTrue(
            run_directory.name.startswith(RUN_DIRECTORY_PREFIX + "20240301123045-")
        )
        self.assertEqual(
            (run_directory / "files" / "payload.txt").read_text(), "payload"
        )

    def test_each_run_gets_its_own_directory(self):
        archive_path = build_archive(self.root, {"manifest.n3": ""})

        first = self.extractor.extract(archive_path)
        second = self.extractor.extract(archive_path)

        self.assertNotEqual(first, second)

    def test_extract_missing_archive(self):
        with self.assertRaisesMessage(ExtractionError, "Failed extracting archive."):
            self.extractor.extract(self.root / "missing.zip")

    def test_extract_invalid_archive(self):
        archive_path = self.root / "broken.zip"
        archive_path.write_bytes(b"this is not a zip file")

        with self.assertRaises(ExtractionError):
            self.extractor.extract(archive_path)

        self.assertFalse(self.working_directory.exists())

    def test_find_manifests(self):
        run_directory = self.root / "run"
        (run_directory / "nested").mkdir(parents=True)
        (run_directory / "nested" / "a.n3").write_text("")
        (run_directory / "b.n3").write_text("")
        (run_directory / "c.txt").write_text("")

        manifests = self.extractor.find_manifests(run_directory)

        self.assertEqual([path.name for path in manifests], ["a.n3", "b.n3"])

    def test_find_manifests_without_manifest(self):
        with self.assertRaises(ManifestMissingError):
            self.extractor.find_manifests(self.root)

    @mock.patch("importer.archive.subprocess.run")
    def test_split(self, run):
        manifest = self.root / "manifest.n3"

        self.assertTrue(self.extractor.split(manifest))

        run.assert_called_once_with(
            ["/opt/splitter", str(manifest)],
            cwd=self.root,
            check=True,
            capture_output=True,
            timeout=5,
        )

    @mock.patch("importer.archive.subprocess.run")
    def test_split_failure_is_not_fatal(self, run):
        run.side_effect = subprocess.TimeoutExpired(cmd="/opt/splitter", timeout=5)

        self.assertFalse(self.extractor.split(self.root / "manifest.n3"))

    @mock.patch("importer.archive.subprocess.run")
    def test_split_with_missing_splitter(self, run):
        run.side_effect = FileNotFoundError("/opt/splitter")

        self.assertFalse(self.extractor.split(self.root / "manifest.n3"))

    @mock.patch("importer.archive.subprocess.run")
    def test_split_without_splitter(self, run):
        extractor = ArchiveExtractor(working_directory=self.root, splitter_path="")

        self.assertFalse(extractor.split(self.root / "manifest.n3"))
        run.assert_not_called()

    def test_cleanup(self):
        directory = self.root / "run"
        (directory / "nested").mkdir(parents=True)
        (directory / "nested" / "file.txt").write_text("")

        self.extractor.cleanup(directory)

        self.assertFalse(directory.exists())
