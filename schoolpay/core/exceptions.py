# schoolpay/core/exceptions.py - Error taxonomy shared by services and routers
from typing import Optional


class SchoolPayError(Exception):
    """Base error rendered by the API as {"error": message}"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(SchoolPayError):
    status_code = 400


class AuthenticationError(SchoolPayError):
    status_code = 401


class PermissionDeniedError(SchoolPayError):
    status_code = 403


class NotFoundError(SchoolPayError):
    status_code = 404


class ServiceError(SchoolPayError):
    """A backend write failed"""
    status_code = 500


class ProvisioningError(ServiceError):
    """An account provisioning step failed after the identity was created"""


class PaymentGatewayError(SchoolPayError):
    """The payment gateway rejected a request"""
    status_code = 400

    def __init__(self, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.payload = payload or {}
