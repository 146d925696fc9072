from django.contrib import admin

from .models import Artifact, ReferencingEntity


@admin.register(Artifact)
class ArtifactAdmin(admin.ModelAdmin):
    list_display = ("filename", "origin_url", "media_type", "published", "created")
    list_filter = ("published", "media_type")
    search_fields = ("filename", "origin_url")
    readonly_fields = ("created", "modified")


@admin.register(ReferencingEntity)
class ReferencingEntityAdmin(admin.ModelAdmin):
    list_display = ("uuid", "kind", "title", "version", "modified")
    list_filter = ("kind",)
    search_fields = ("uuid", "title")
    readonly_fields = ("version", "created", "modified")
