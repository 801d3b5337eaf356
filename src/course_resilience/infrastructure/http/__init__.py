from course_resilience.infrastructure.http.api_client import (
    ApiClient,
    ApiClientConfig,
    close_api_client,
    create_authenticated_client,
    get_api_client,
)
from course_resilience.infrastructure.http.models import (
    ErrorInfo,
    RequestEnvelope,
    ResponseEnvelope,
)

__all__ = [
    "ApiClient",
    "ApiClientConfig",
    "ErrorInfo",
    "RequestEnvelope",
    "ResponseEnvelope",
    "close_api_client",
    "create_authenticated_client",
    "get_api_client",
]
