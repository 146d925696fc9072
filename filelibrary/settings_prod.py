import os

from .settings_template import *  # NOQA ignore=F405
from .settings_template import FILELIBRARY_ENVIRONMENT, LOGGING, STORAGES

LOGGING["handlers"]["file"]["filename"] = "./logs/filelibrary-web.log"
LOGGING["handlers"]["celery"]["filename"] = "./logs/filelibrary-celery.log"

DJANGO_SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "changeme")

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

CSRF_COOKIE_SECURE = True

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "pyamqp://guest@rabbit:5672")
CELERY_RESULT_BACKEND = "rpc://"

S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME")

AWS_STORAGE_BUCKET_NAME = S3_BUCKET_NAME
AWS_DEFAULT_ACL = None  # Don't set an ACL on the files, inherit the bucket ACLs

STORAGES["artifacts"] = {
    "BACKEND": "filelibrary.storage_backends.ArtifactS3Storage",
}

if FILELIBRARY_ENVIRONMENT == "production":
    MEDIA_URL = os.getenv("MEDIA_URL", "https://files.example.org/")
else:
    MEDIA_URL = "https://%s.s3.amazonaws.com/" % S3_BUCKET_NAME

SESSION_ENGINE = "django.contrib.sessions.backends.cached_db"
