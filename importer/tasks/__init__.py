"""
Celery tasks for the importer

Task modules are imported by the Celery app once it is finalized, so every
module in this package is registered with the worker.
"""
