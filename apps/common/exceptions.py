from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class DomainError(ValueError):
    """Business rule violation raised by the service layer.

    Views translate it into the standard ``{"code", "detail", "fields"}``
    envelope; the surrounding ``transaction.atomic`` block rolls back whatever
    the service already wrote.
    """

    code = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail, code=None, fields=None):
        super().__init__(detail)
        if code:
            self.code = code
        self.fields = fields or {}

    def as_response(self):
        return Response({"code": self.code, "detail": str(self), "fields": self.fields}, status=self.status_code)


class DomainValidationError(DomainError):
    code = "invalid_request"


class CouponError(DomainError):
    code = "invalid_coupon"


class NotFoundError(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class InsufficientBalanceError(ConflictError):
    code = "insufficient_balance"


class AuthenticationRequiredError(DomainError):
    code = "not_authenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


def api_exception_handler(exc, context):
    if isinstance(exc, DomainError):
        return exc.as_response()

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    response.data = {
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
