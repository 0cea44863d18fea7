from django.contrib import admin

from .models import MergeJob


@admin.register(MergeJob)
class MergeJobAdmin(admin.ModelAdmin):
    list_display = ("id", "status", "error_kind", "created_at", "updated_at")
    list_filter = ("status", "error_kind")
    readonly_fields = ("inputs", "quality", "output_ref", "error", "created_at", "updated_at")
