from django.contrib import admin

from .models import Batch, BatchMovement, SortingBatch


class BatchMovementInline(admin.TabularInline):
    model = BatchMovement
    extra = 0
    can_delete = False
    readonly_fields = ("kind", "pieces", "weight_grams", "transfer", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SortingBatch)
class SortingBatchAdmin(admin.ModelAdmin):
    list_display = ("batch_number", "farmer_name", "processing_date", "created_at")
    search_fields = ("batch_number", "farmer_name")
    date_hierarchy = "created_at"


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    # Ledger rows are written by the services only; the admin is a read-only window.
    list_display = (
        "id",
        "storage_location",
        "size_class",
        "pieces",
        "weight_grams",
        "sorting_batch",
        "transfer_source_location_name",
        "transfer",
        "created_at",
    )
    list_filter = ("storage_location", "size_class")
    search_fields = ("sorting_batch__batch_number", "transfer_source_location_name")
    date_hierarchy = "created_at"
    ordering = ("created_at", "id")
    inlines = [BatchMovementInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
