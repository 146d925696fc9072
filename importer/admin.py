from django.contrib import admin, messages
from django.contrib.humanize.templatetags.humanize import naturaltime
from django.db.models import QuerySet
from django.http import HttpRequest

from importer.tasks.redirects import process_redirect_task

from .models import RedirectTask


@admin.action(description="Process now")
def process_redirect_tasks_now(
    modeladmin: admin.ModelAdmin,
    request: HttpRequest,
    queryset: QuerySet[RedirectTask],
) -> None:
    """
    Queue the redirect Celery task for the selected rows, skipping any which
    are already published.
    """
    pks = list(
        queryset.exclude(status=RedirectTask.Status.PUBLISHED).values_list(
            "pk", flat=True
        )
    )
    for pk in pks:
        process_redirect_task.delay(pk)
    messages.add_message(request, messages.INFO, "Queued %d tasks" % len(pks))


class NullableTimestampFilter(admin.SimpleListFilter):
    """
    Base class for Admin list filters which define whether a datetime field has
    a value or is null
    """

    title = ""
    parameter_name = ""
    lookup_labels = ("NULL", "NOT NULL")

    def lookups(self, request, model_admin):
        return zip(("null", "not-null"), self.lookup_labels, strict=False)

    def queryset(self, request, queryset):
        kwargs = {"%s__isnull" % self.parameter_name: True}
        if self.value() == "null":
            return queryset.filter(**kwargs)
        elif self.value() == "not-null":
            return queryset.exclude(**kwargs)
        return queryset


class CompletedFilter(NullableTimestampFilter):
    title = "Completed"
    parameter_name = "completed"
    lookup_labels = ("Incomplete", "Completed")


class FailedFilter(NullableTimestampFilter):
    title = "Failed"
    parameter_name = "failed"
    lookup_labels = ("Has not failed", "Has failed")


class HasArtifactFilter(NullableTimestampFilter):
    title = "Artifact"
    parameter_name = "artifact"
    lookup_labels = ("Location only", "With artifact")


def natural_timestamp(field_name):
    def inner(obj):
        value = getattr(obj, field_name, None)
        return naturaltime(value) if value else value

    inner.short_description = field_name.replace("_", " ").title()
    inner.admin_order_field = field_name
    return inner


@admin.register(RedirectTask)
class RedirectTaskAdmin(admin.ModelAdmin):
    readonly_fields = (
        "created",
        "modified",
        "artifact",
        "attempts",
        "last_started",
        "completed",
        "failed",
        "last_response",
        "failure_history",
    )
    list_display = (
        "real_url",
        "redirect_url",
        "status",
        "attempts",
        natural_timestamp("created"),
        natural_timestamp("next_attempt_at"),
        natural_timestamp("completed"),
    )
    list_filter = ("status", CompletedFilter, FailedFilter, HasArtifactFilter)
    search_fields = ("real_url", "redirect_url", "last_response")
    actions = (process_redirect_tasks_now,)
