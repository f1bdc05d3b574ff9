from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.http import JsonResponse
from django.views import View

from core.errors import ConcurrentModification, StockError
from core.http import error_response, form_error_response

from .forms import TransferLineFormSet, TransferRequestForm
from .services import (
    approve_transfer_batch,
    create_transfer_batch,
    decline_transfer_batch,
    pending_transfers,
    transfer_group,
    transfer_history,
)


def transfer_payload(request):
    return {
        'id': request.pk,
        'batch_group_id': request.batch_group_id,
        'source_location_id': request.source_location_id,
        'source_location_name': request.source_location.name,
        'destination_location_id': request.destination_location_id,
        'destination_location_name': request.destination_location.name,
        'size': request.size_class,
        'requested_pieces': request.requested_pieces,
        'requested_weight_grams': request.requested_weight_grams,
        'moved_pieces': request.moved_pieces,
        'moved_weight_grams': request.moved_weight_grams,
        'status': request.status,
        'requested_by': request.requested_by.get_username() if request.requested_by_id else None,
        'approved_by': request.approved_by.get_username() if request.approved_by_id else None,
        'created_at': request.created_at,
        'approved_at': request.approved_at,
        'completed_at': request.completed_at,
        'notes': request.notes,
    }


class TransferCreateView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.add_transferrequest'

    def post(self, request):
        form = TransferRequestForm(request.POST)
        formset = TransferLineFormSet(request.POST)
        if not (form.is_valid() and formset.is_valid()):
            return form_error_response(form, formset)
        try:
            ids = create_transfer_batch(
                form.cleaned_data['source_location'].pk,
                form.cleaned_data['destination_location'].pk,
                formset.requested_sizes(),
                requester=request.user,
                notes=form.cleaned_data['notes'],
            )
        except (StockError, ConcurrentModification) as exc:
            return error_response(exc)
        return JsonResponse({'transfer_ids': ids}, status=201)


class PendingTransfersView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.view_transferrequest'

    def get(self, request):
        return JsonResponse({'transfers': [transfer_payload(t) for t in pending_transfers()]})


class TransferHistoryView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.view_transferrequest'

    def get(self, request):
        try:
            limit = max(1, min(int(request.GET.get('limit', 100)), 500))
        except ValueError:
            limit = 100
        return JsonResponse({'transfers': [transfer_payload(t) for t in transfer_history(limit=limit)]})


class TransferGroupView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.view_transferrequest'

    def get(self, request, pk):
        try:
            members = transfer_group(pk)
        except StockError as exc:
            return error_response(exc)
        return JsonResponse({'transfers': [transfer_payload(t) for t in members]})


class TransferApproveView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.approve_transferrequest'

    def post(self, request, pk):
        try:
            result = approve_transfer_batch(pk, approver=request.user)
        except (StockError, ConcurrentModification) as exc:
            return error_response(exc)
        return JsonResponse(result.as_dict(), status=200 if result.approved_count else 409)


class TransferDeclineView(LoginRequiredMixin, PermissionRequiredMixin, View):
    permission_required = 'transfers.approve_transferrequest'

    def post(self, request, pk):
        try:
            result = decline_transfer_batch(pk, approver=request.user)
        except (StockError, ConcurrentModification) as exc:
            return error_response(exc)
        return JsonResponse(result.as_dict())
