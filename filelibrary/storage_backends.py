from storages.backends.s3boto3 import S3Boto3Storage


class ArtifactS3Storage(S3Boto3Storage):
    """
    Artifact payloads are written under a run-namespaced prefix, so a name
    that already exists belongs to a re-run of the same archive and is
    overwritten rather than suffixed.
    """

    file_overwrite = True
    querystring_auth = False
