#!/usr/bin/env python
from setuptools import find_packages, setup

VERSION = __import__("filelibrary").get_version()
INSTALL_REQUIREMENTS = [
    "boto3",
    "celery[redis]",
    "Django>=4.2",
    "django-redis",
    "django-storages",
    "django-structlog",
    "psycopg2-binary",
    "rdflib",
    "requests",
    "sentry-sdk",
    "structlog",
]
TEST_REQUIREMENTS = ["pytest", "pytest-django"]
SCRIPTS = ["manage.py"]
DESCRIPTION = "Linked data archive importer for a file library"
CLASSIFIERS = """\
Environment :: Web Environment
Framework :: Django
Programming Language :: Python
Programming Language :: Python :: 3
""".splitlines()

with open("README.md", "r") as f:
    LONG_DESCRIPTION = f.read()


setup(
    name="filelibrary",
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    packages=find_packages(),
    include_package_data=True,
    scripts=SCRIPTS,
    install_requires=INSTALL_REQUIREMENTS,
    extras_require={"test": TEST_REQUIREMENTS},
    classifiers=CLASSIFIERS,
)
