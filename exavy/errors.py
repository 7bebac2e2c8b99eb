"""Error types shared by the entitlement and verification services.

Every error carries the HTTP status it maps to so blueprints can render it
through a single Flask error handler.
"""


class ServiceError(Exception):
    status_code = 500
    error_code = 'service_error'
    default_message = 'Could not process the request'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self):
        return {'error': self.message, 'error_code': self.error_code}


class ValidationError(ServiceError):
    status_code = 400
    error_code = 'validation_error'
    default_message = 'Invalid request'


class RateLimited(ServiceError):
    status_code = 429
    error_code = 'rate_limited'
    default_message = 'Too many requests. Please try again in a few minutes.'

    def __init__(self, message=None, retry_after=1):
        super().__init__(message)
        self.retry_after = max(1, int(retry_after or 1))

    def to_payload(self):
        payload = super().to_payload()
        payload['retry_after_seconds'] = self.retry_after
        return payload


class NotFoundOrExpired(ServiceError):
    """Raised for every failed code verification, whatever the cause."""

    status_code = 400
    error_code = 'invalid_or_expired'
    default_message = 'Invalid or expired code'

    def to_payload(self):
        payload = super().to_payload()
        payload['valid'] = False
        return payload


class QuotaExceeded(ServiceError):
    status_code = 403
    error_code = 'quota_exceeded'

    def __init__(self, message, resource, current, limit, plan):
        super().__init__(message)
        self.resource = resource
        self.current = current
        self.limit = limit
        self.plan = plan

    def to_payload(self):
        payload = super().to_payload()
        payload.update({
            'allowed': False,
            'resource': self.resource,
            'current': self.current,
            'limit': self.limit,
            'plan': self.plan,
            'message': self.message,
        })
        return payload


class TransientStoreError(ServiceError):
    status_code = 503
    error_code = 'store_unavailable'
    default_message = 'Service temporarily unavailable. Please try again.'
