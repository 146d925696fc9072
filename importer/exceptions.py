class ImportFailure(Exception):
    """
    Raised when an archive import has to be abandoned.

    Every subclass is fatal for the run: nothing after the failing step is
    processed and the caller receives this exception's message as the single
    error description.
    """

    pass


class ExtractionError(ImportFailure):
    """
    Raised when the uploaded archive can't be opened or extracted.
    """

    pass


class ManifestMissingError(ImportFailure):
    """
    Raised when no manifest (or no manifest fragment) exists in the
    extracted archive.
    """

    pass


class ReferencedFileMissing(ImportFailure):
    """
    Raised when a bibliographic resource points at a payload file which is
    not present in the archive.
    """

    pass


class ArtifactStorageUnavailable(ImportFailure):
    """
    Raised when artifact storage can't be reached at all. Ordinary write
    failures for a single file are not fatal and don't raise this.
    """

    pass


class RedirectRegistrationError(Exception):
    """
    Raised by the redirect worker when a redirect task could not be
    registered. The queue treats it as retryable and reschedules the task.

    ``response`` holds the body returned by the redirect service, if any.
    """

    def __init__(self, message, response=""):
        super().__init__(message)
        self.response = response
