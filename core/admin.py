from django.contrib import admin

from .models import DataQualityAlert


@admin.register(DataQualityAlert)
class DataQualityAlertAdmin(admin.ModelAdmin):
    list_display = ("code", "category", "severity", "detected_at", "resolved_at", "auto_resolved")
    list_filter = ("category", "severity", "auto_resolved")
    search_fields = ("code", "message", "record_id")
    ordering = ("-detected_at",)
