"""Error taxonomy shared by the services and rendered by the API.

Services raise these; ``main`` turns every ``CrmError`` into a
``{"error": code, "message": text}`` JSON body with the matching status.
"""


class CrmError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PreconditionFailed(CrmError):
    status_code = 409
    code = "precondition_failed"


class NotFound(CrmError):
    status_code = 404
    code = "not_found"


class ValidationError(CrmError):
    status_code = 400
    code = "validation_error"


class UpstreamUnavailable(CrmError):
    """Record store, artifact store or mail transport failed."""
    status_code = 502
    code = "upstream_unavailable"


class VersionConflict(CrmError):
    status_code = 409
    code = "version_conflict"


# Raised for throttled or exhausted upstream providers (see
# email.classify_smtp_error). Neither is retried.
class RateLimited(CrmError):
    status_code = 429
    code = "rate_limited"


class QuotaExceeded(CrmError):
    status_code = 429
    code = "quota_exceeded"
