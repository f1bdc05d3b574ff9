from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.http import JsonResponse
from django.views import View

from core.errors import StockError
from core.http import error_response

from .services import (
    available_locations_for_transfer,
    available_stock,
    compute_inventory,
    location_usage,
    oldest_batches,
    storage_capacity_status,
)
from ledger.services import validate_size_class


class InventoryView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'ledger.view_batch'

    def get(self, request):
        rows = compute_inventory()
        location_id = request.GET.get('location')
        if location_id:
            rows = [row for row in rows if str(row.storage_location_id) == location_id]
        return JsonResponse({'rows': [row.as_dict() for row in rows]})


class CapacityView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'storage.view_storagelocation'

    def get(self, request, pk=None):
        if pk is not None:
            try:
                return JsonResponse(location_usage(pk).as_dict())
            except StockError as exc:
                return error_response(exc)
        active_only = request.GET.get('active') in ('1', 'true', 'yes')
        return JsonResponse({'locations': [u.as_dict() for u in storage_capacity_status(active_only=active_only)]})


class TransferDestinationsView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.add_transferrequest'

    def get(self, request):
        usages = available_locations_for_transfer(exclude_location_id=request.GET.get('exclude') or None)
        return JsonResponse({'locations': [u.as_dict() for u in usages]})


class AvailableStockView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'ledger.view_batch'

    def get(self, request, pk, size_class):
        try:
            validate_size_class(size_class)
            location = location_usage(pk)
        except StockError as exc:
            return error_response(exc)
        stock = available_stock(location.location_id, size_class)
        return JsonResponse(
            {
                'storage_location_id': location.location_id,
                'size': size_class,
                'total_quantity': stock.pieces,
                'total_weight_grams': stock.weight_grams,
            }
        )


class OldestBatchesView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'ledger.view_batch'

    def get(self, request):
        try:
            limit = max(1, min(int(request.GET.get('limit', 10)), 100))
        except ValueError:
            limit = 10
        payload = []
        for aged in oldest_batches(limit=limit):
            entry = aged.batch.as_dict()
            entry.update(
                {
                    'storage_location_name': aged.storage_location_name,
                    'size': aged.size_class,
                    'days_in_storage': aged.days_in_storage,
                }
            )
            payload.append(entry)
        return JsonResponse({'batches': payload})
