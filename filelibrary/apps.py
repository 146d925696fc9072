from django.apps.config import AppConfig


class FileLibraryConfig(AppConfig):
    name = "filelibrary"
    verbose_name = "File library"
