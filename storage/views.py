from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.http import JsonResponse
from django.views import View

from core.errors import StockError
from core.http import error_response

from .services import get_location, list_locations


def location_payload(location):
    return {
        "id": location.pk,
        "name": location.name,
        "location_type": location.location_type,
        "description": location.description,
        "capacity_kg": location.capacity_kg,
        "status": location.status,
        "created_at": location.created_at,
    }


class LocationListView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'storage.view_storagelocation'

    def get(self, request):
        active_only = request.GET.get('active') in ('1', 'true', 'yes')
        locations = list_locations(active_only=active_only)
        return JsonResponse({'locations': [location_payload(loc) for loc in locations]})


class LocationDetailView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'storage.view_storagelocation'

    def get(self, request, pk):
        try:
            location = get_location(pk)
        except StockError as exc:
            return error_response(exc)
        return JsonResponse(location_payload(location))
