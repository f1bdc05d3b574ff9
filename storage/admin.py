from django.contrib import admin

from .models import StorageLocation


@admin.register(StorageLocation)
class StorageLocationAdmin(admin.ModelAdmin):
    list_display = ("name", "location_type", "capacity_kg", "status")
    list_filter = ("location_type", "status")
    search_fields = ("name", "description")
    ordering = ("name",)

    def has_delete_permission(self, request, obj=None):
        # Locations are deactivated, never deleted.
        return False
