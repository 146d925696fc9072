from django.core.files.storage import storages


def get_artifact_storage():
    """
    Storage for artifact payloads.

    Passed to FileField as a callable so migrations reference this function
    instead of serializing a storage instance, and so deployments can point
    the "artifacts" alias at S3 without touching the model.
    """
    return storages["artifacts"]
