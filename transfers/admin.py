from django.contrib import admin

from .models import TransferRequest


@admin.register(TransferRequest)
class TransferRequestAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "size_class",
        "source_location",
        "destination_location",
        "requested_pieces",
        "requested_weight_grams",
        "status",
        "created_at",
    )
    list_filter = ("status", "source_location", "destination_location")
    search_fields = ("batch_group_id", "notes")
    date_hierarchy = "created_at"
    readonly_fields = [field.name for field in TransferRequest._meta.fields]

    def has_add_permission(self, request):
        # Requests go through the transfer workflow so stock is validated.
        return False

    def has_delete_permission(self, request, obj=None):
        return False
