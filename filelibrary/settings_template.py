import os
from datetime import timedelta

import sentry_sdk
import structlog
from django.core.management.utils import get_random_secret_key
from sentry_sdk.integrations.django import DjangoIntegration

from filelibrary import get_version

DEFAULT_AUTO_FIELD = "django.db.models.AutoField"

# Build paths inside the project like this: os.path.join(SITE_ROOT_DIR, ...)
FILELIBRARY_APP_DIR = os.path.abspath(os.path.dirname(__file__))
SITE_ROOT_DIR = os.path.dirname(FILELIBRARY_APP_DIR)

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", get_random_secret_key())

#: Deployment mode, resolved once here and never re-read from the environment.
#: "production" selects the production redirect service, anything else staging
FILELIBRARY_ENVIRONMENT = os.environ.get("FILELIBRARY_ENVIRONMENT", "development")

ALLOWED_HOSTS = ["*"]

DEBUG = False
CSRF_COOKIE_SECURE = False

LANGUAGE_CODE = "en-us"
ROOT_URLCONF = "filelibrary.urls"
STATIC_ROOT = "static-files"
STATIC_URL = "/static/"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True
WSGI_APPLICATION = "filelibrary.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": "filelibrary",
        "USER": "filelibrary",
        "PASSWORD": os.getenv("POSTGRESQL_PW"),
        "HOST": os.getenv("POSTGRESQL_HOST", "localhost"),
        "PORT": os.getenv("POSTGRESQL_PORT", "5432"),
        "CONN_MAX_AGE": 0,
    }
}

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django.contrib.humanize",
    "django_structlog",
    "filelibrary",
    "importer",
    "configuration.apps.ConfigurationConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django_structlog.middlewares.RequestMiddleware",
]

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

REDIS_ADDRESS = os.environ.get("REDIS_ADDRESS", "localhost")
REDIS_PORT = os.environ.get("REDIS_PORT", "")
if REDIS_PORT.isdigit():
    REDIS_PORT = int(REDIS_PORT)
else:
    REDIS_PORT = 6379

if REDIS_ADDRESS and REDIS_PORT:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/1",
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        },
        "configuration_cache": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/3",
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        },
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        },
        "configuration_cache": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache"
        },
    }

CELERY_BROKER_URL = f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/0"
CELERY_RESULT_BACKEND = f"redis://{REDIS_ADDRESS}:{REDIS_PORT}/0"

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_IMPORTS = (
    "importer.tasks.housekeeping",
    "importer.tasks.imports",
    "importer.tasks.redirects",
)

CELERY_BROKER_HEARTBEAT = 0
CELERY_BROKER_CONNECTION_RETRY = True
CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True
CELERY_BROKER_TRANSPORT_OPTIONS = {
    "confirm_publish": True,
    "max_retries": 3,
    "interval_start": 0,
    "interval_step": 0.2,
    "interval_max": 0.5,
}

CELERY_BEAT_SCHEDULE = {
    "process-redirect-queue": {
        "task": "importer.tasks.redirects.process_redirect_queue",
        "schedule": timedelta(minutes=1),
    },
    "purge-working-directories": {
        "task": "importer.tasks.housekeeping.purge_working_directories",
        "schedule": timedelta(hours=6),
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "long": {
            "format": "[{asctime} {levelname} {name}:{lineno}] {message}",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
            "style": "{",
        },
        "structlog_json": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.processors.JSONRenderer(),
        },
        "structlog_console": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.dev.ConsoleRenderer(),
        },
    },
    "handlers": {
        "stream": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "long",
        },
        "file": {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": "INFO",
            "formatter": "long",
            "filename": f"{SITE_ROOT_DIR}/logs/filelibrary.log",
            "when": "H",
            "interval": 3,
            "backupCount": 16,
            "delay": True,
        },
        "celery": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": f"{SITE_ROOT_DIR}/logs/celery.log",
            "formatter": "long",
            "maxBytes": 1024 * 1024 * 100,  # 100 mb
            "delay": True,
        },
        "structlog_file": {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": "DEBUG",
            "formatter": "structlog_json",
            "filename": f"{SITE_ROOT_DIR}/logs/filelibrary-json.log",
            "when": "H",
            "interval": 3,
            "backupCount": 16,
            "delay": True,
        },
        "structlog_console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "structlog_console",
        },
    },
    "loggers": {
        "django": {"handlers": ["file"], "level": "INFO"},
        "celery": {"handlers": ["celery"], "level": "INFO"},
        "filelibrary": {"handlers": ["file"], "level": "INFO"},
        "importer": {"handlers": ["file"], "level": "INFO"},
        "structlog": {
            "handlers": ["structlog_file"],
            "level": "DEBUG",
            "propagate": True,
        },
        "django_structlog": {
            "handlers": ["structlog_file"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


################################################################################
# Django-specific settings above
################################################################################

MEDIA_URL = "/media/"
MEDIA_ROOT = os.path.join(SITE_ROOT_DIR, "media")

#: Absolute base used to turn storage URLs into public artifact URLs
SITE_BASE_URL = os.environ.get("SITE_BASE_URL", "http://localhost:8000/")

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
    "artifacts": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
}

SENTRY_BACKEND_DSN = os.environ.get("SENTRY_BACKEND_DSN", "")

APPLICATION_VERSION = get_version()

sentry_sdk.init(
    dsn=SENTRY_BACKEND_DSN,
    environment=FILELIBRARY_ENVIRONMENT,
    release=APPLICATION_VERSION,
    integrations=[DjangoIntegration()],
)

CONFIGURATION_CACHE_TIMEOUT = 3600  # One hour

# Import pipeline settings

if FILELIBRARY_ENVIRONMENT in ("production", "staging"):
    _DEFAULT_SPLITTER_PATH = "/srv/filelibrary/private/n3splitter"
else:
    _DEFAULT_SPLITTER_PATH = os.path.join(SITE_ROOT_DIR, "scripts", "n3splitter")

IMPORTER = {
    #: Root under which each run gets its own extraction directory
    "WORKING_DIRECTORY": os.environ.get(
        "FILELIBRARY_WORKING_DIRECTORY", "/tmp/filelibrary_imports/"
    ),
    #: Keep extraction directories after a run (for debugging only)
    "RETAIN_WORKING_DIRECTORIES": False,
    #: Directories older than this are removed by the housekeeping task
    "WORKING_DIRECTORY_MAX_AGE_HOURS": 24,
    "SPLITTER_PATH": os.environ.get("FILELIBRARY_SPLITTER_PATH", _DEFAULT_SPLITTER_PATH),
    "SPLITTER_TIMEOUT": 10 * 60,
    "MANIFEST_FORMAT": "turtle",
    "DEFAULT_PROFILE": "integration_files",
}

IMPORTER_PROFILES = {
    "integration_files": {
        "matching": "exact_one",
        "entity_kinds": ["integration", "integration_version"],
        "graph_loading": "single_file",
        "storage_prefix": "integration-files",
        "media_type": "file",
        "import_locations": True,
    },
    "error_codes": {
        "matching": "prefix_fanout",
        "entity_kinds": ["serviceuuid"],
        "graph_loading": "split_and_merge",
        "storage_prefix": "error-codes",
        "media_type": "html",
        "import_locations": False,
    },
}

#: Retry contract for redirect registrations. BACKOFF and BACKOFF_MAX are in
#: seconds; the delay doubles with every failed attempt.
REDIRECT_QUEUE = {
    "MAX_ATTEMPTS": 8,
    "BACKOFF": 60,
    "BACKOFF_MAX": 8 * 60 * 60,
    "VISIBILITY_TIMEOUT": 10 * 60,
    "TIME_BUDGET": 30,
}

#: Seconds before an outbound redirect registration request is abandoned
REDIRECT_SERVICE_TIMEOUT = 30

#: Configuration key holding the redirect service record
REDIRECT_SERVICE_CONFIGURATION_KEY = "redirect_service"
