from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from approvals.exceptions import NoApprovalPolicy, WorkflowStateError


def _validation_detail(e: DjangoValidationError):
    if hasattr(e, "error_dict"):
        return {field: [str(m) for m in msgs] for field, msgs in e.message_dict.items()}
    return {"detail": " ".join(e.messages)}


def domain_error_response(e: Exception):
    """
    Maps service-layer exceptions to an API response, or returns None when the
    exception is not one of ours (callers re-raise).
    """
    if isinstance(e, DjangoValidationError):
        return Response(_validation_detail(e), status=status.HTTP_400_BAD_REQUEST)
    if isinstance(e, PermissionError):
        return Response({"detail": str(e)}, status=status.HTTP_403_FORBIDDEN)
    if isinstance(e, WorkflowStateError):
        return Response({"detail": str(e)}, status=status.HTTP_409_CONFLICT)
    if isinstance(e, NoApprovalPolicy):
        return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return None


DOMAIN_ERRORS = (DjangoValidationError, PermissionError, WorkflowStateError, NoApprovalPolicy)


def api_exception_handler(exc, context):
    """REST_FRAMEWORK['EXCEPTION_HANDLER']: DRF's handler first, then the domain mapping."""
    response = exception_handler(exc, context)
    if response is not None:
        return response
    return domain_error_response(exc)
