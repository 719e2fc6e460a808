"""Exception hierarchy shared by every storefront app"""


class StorefrontError(Exception):
    """Base class for storefront failures"""

    def __init__(self, message='', details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return self.message


class BackendError(StorefrontError):
    """Network or database failure reported by the hosted backend"""

    def __init__(self, message='', status_code=None, code=None, details=None):
        super().__init__(message, details)
        self.status_code = status_code
        self.code = code

    @classmethod
    def from_response(cls, response):
        """Build an error from a non-2xx backend response"""
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {'detail': payload}
        message = (
            payload.get('message')
            or payload.get('error_description')
            or payload.get('msg')
            or payload.get('error')
            or response.text
            or f'HTTP {response.status_code}'
        )
        return cls(
            message=str(message),
            status_code=response.status_code,
            code=payload.get('code'),
            details=payload,
        )


class NotAuthenticated(StorefrontError):
    """Action requires a signed-in user"""

    def __init__(self, message='Non authentifié'):
        super().__init__(message)


class AuthenticationFailed(StorefrontError):
    """Sign-in, sign-up or session restore was refused"""


class ValidationFailed(StorefrontError):
    """Input rejected before submission; errors are keyed by field"""

    def __init__(self, errors, message='Données invalides'):
        super().__init__(message, details=errors)
        self.errors = errors


class CheckoutError(StorefrontError):
    """Order could not be placed (price drift, stock, backend write)"""


class ImportFileError(StorefrontError):
    """CSV import file could not be read at all"""
