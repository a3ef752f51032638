# errors.py
# Exceptions raised by the service layer and rendered as JSON by app.py


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ServiceError):
    status_code = 400


class UnauthorizedError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class IdentityError(ServiceError):
    """Raised by the identity provider when it cannot complete a request."""
    status_code = 500
