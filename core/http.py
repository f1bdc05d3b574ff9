from django.http import JsonResponse

from core.errors import (
    ConcurrentModification,
    DuplicateTransfer,
    LocationNotFound,
    StockError,
    TransferNotFound,
    TransferNotPending,
)

NOT_FOUND = (LocationNotFound, TransferNotFound)
CONFLICT = (DuplicateTransfer, TransferNotPending)


def error_response(exc):
    """Render a business error as a JSON body with a matching status code."""
    if isinstance(exc, ConcurrentModification):
        return JsonResponse({"error": "concurrent_modification", "message": str(exc), "failures": []}, status=409)
    if isinstance(exc, NOT_FOUND):
        status = 404
    elif isinstance(exc, CONFLICT):
        status = 409
    elif isinstance(exc, StockError):
        status = 400
    else:
        raise TypeError(f"Cannot render {type(exc).__name__} as an error response.")
    return JsonResponse(exc.as_dict(), status=status)


def form_error_response(form, formset=None):
    errors = form.errors.get_json_data()
    if formset is not None:
        for index, line in enumerate(formset.forms):
            if line.errors:
                errors[f"line-{index}"] = line.errors.get_json_data()
        if formset.non_form_errors():
            errors["lines"] = formset.non_form_errors().get_json_data()
    return JsonResponse({"error": "invalid_form", "message": "Submitted data is invalid.", "errors": errors}, status=400)
