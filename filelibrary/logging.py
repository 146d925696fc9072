from types import MappingProxyType
from typing import Any, Optional

import structlog


def _artifact_fields(artifact):
    return {
        "artifact_id": getattr(artifact, "pk", None),
        "origin_url": getattr(artifact, "origin_url", None),
    }


def _entity_fields(entity):
    return {
        "entity_id": getattr(entity, "pk", None),
        "entity_kind": getattr(entity, "kind", None),
        "entity_uuid": getattr(entity, "uuid", None),
    }


def _redirect_task_fields(task):
    return {
        **_artifact_fields(getattr(task, "artifact", None)),
        "redirect_task_id": getattr(task, "pk", None),
        "real_url": getattr(task, "real_url", None),
        "redirect_url": getattr(task, "redirect_url", None),
    }


#: Keyword arguments which are expanded into flat log fields
CONTEXT_EXTRACTORS = MappingProxyType(
    {
        "artifact": _artifact_fields,
        "entity": _entity_fields,
        "redirect_task": _redirect_task_fields,
    }
)


class FileLibraryLogger:
    """
    structlog wrapper used for the import and redirect events.

    Every event needs a message and an ``event_code``; warnings and errors
    also need ``reason`` and ``reason_code``. Model instances passed as
    ``artifact``, ``entity`` or ``redirect_task`` (directly or through
    ``bind()``) are expanded into their id and URL fields. Explicit keyword
    values win over extracted ones and ``None`` values are dropped.

        structured_logger = FileLibraryLogger.get_logger(__name__)
        structured_logger.warning(
            "Resource skipped.",
            event_code="resource_skipped",
            reason="Identity URI is not a valid absolute URL.",
            reason_code="invalid_uri",
            uri=uri,
        )
    """

    def __init__(self, logger, context: Optional[dict[str, Any]] = None):
        self._logger = logger
        self._context = context or {}

    @classmethod
    def get_logger(cls, name: str) -> "FileLibraryLogger":
        return cls(structlog.get_logger(f"structlog.{name}"))

    def bind(self, **context: Any) -> "FileLibraryLogger":
        """
        Return a new logger carrying `context` on every subsequent call.
        """
        return FileLibraryLogger(self._logger, {**self._context, **context})

    def log(
        self,
        level: str,
        message: str,
        *,
        event_code: str,
        reason: Optional[str] = None,
        reason_code: Optional[str] = None,
        **context: Any,
    ) -> None:
        """
        Emit structured logs with standardized context. This shouldn't be called
        directly under ordinary circumstances; use one of the level methods.

        Raises:
            ValueError: If required fields are missing for the given log level.
        """
        if not message:
            raise ValueError("Log message is required.")
        if not event_code:
            raise ValueError("Structured logs must include an 'event_code' field.")
        if level in ("warning", "error") and (not reason or not reason_code):
            raise ValueError(
                "Warnings and errors must include both 'reason' and 'reason_code'."
            )

        context_data = {"event_code": event_code}
        if reason:
            context_data["reason"] = reason
        if reason_code:
            context_data["reason_code"] = reason_code

        bound_context = self._context

        for context_key, extractor_function in CONTEXT_EXTRACTORS.items():
            context_object = context.pop(context_key, bound_context.get(context_key))
            if context_object:
                extracted_fields = extractor_function(context_object)
                for key, value in extracted_fields.items():
                    if value is not None:
                        context_data.setdefault(key, value)

        for key, value in bound_context.items():
            if (
                key not in CONTEXT_EXTRACTORS
                and key not in context
                and value is not None
            ):
                context_data[key] = value

        # Explicit values win over extracted and bound ones
        for key, value in context.items():
            if value is not None:
                context_data[key] = value

        getattr(self._logger, level)(message, **context_data)

    def debug(self, message: str, *, event_code: str, **kwargs):
        """Emit a debug-level structured log."""
        self.log("debug", message, event_code=event_code, **kwargs)

    def info(self, message: str, *, event_code: str, **kwargs):
        """Emit an info-level structured log."""
        self.log("info", message, event_code=event_code, **kwargs)

    def warning(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        """Emit a warning-level structured log. Requires reason and reason_code."""
        self.log(
            "warning",
            message,
            event_code=event_code,
            reason=reason,
            reason_code=reason_code,
            **kwargs,
        )

    def error(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        """Emit an error-level structured log. Requires reason and reason_code."""
        self.log(
            "error",
            message,
            event_code=event_code,
            reason=reason,
            reason_code=reason_code,
            **kwargs,
        )
