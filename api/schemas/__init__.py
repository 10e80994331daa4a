from api.schemas.common import ErrorDetail, ErrorResponse, error_responses

__all__ = ["ErrorDetail", "ErrorResponse", "error_responses"]
