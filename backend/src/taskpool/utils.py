"""
Common utility functions for Lambda handlers.
"""
import json
from decimal import Decimal
from typing import Any, Dict

from .errors import TaskPoolError, ValidationError
from .logging import logger


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal amounts from DynamoDB."""

    def default(self, o):
        if isinstance(o, Decimal):
            # Amounts are rendered as strings with their exact scale ("50.00")
            return str(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Build a Lambda proxy response with CORS headers.

    Args:
        status_code: HTTP status code
        body: JSON-serializable payload; Decimals are rendered as strings
        headers: Extra headers, override the defaults

    Returns:
        API Gateway proxy response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }

    if headers:
        default_headers.update(headers)

    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: TaskPoolError) -> Dict[str, Any]:
    """Map an engine error to its stable code, message and HTTP status."""
    return format_response(error.http_status, error.to_dict())


def internal_error_response(action: str, error: Exception) -> Dict[str, Any]:
    """Log an unexpected failure with its traceback; never leak details to the caller."""
    logger.exception(f"Unexpected error {action}: {error}")
    return format_response(500, {'error': 'InternalError', 'message': 'Internal Server Error'})


def parse_body(event: dict) -> dict:
    """
    Parse the JSON object body of an API Gateway event.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        Parsed body dict, empty dict when there is no body

    Raises:
        ValidationError: if the body is not a JSON object
    """
    body = event.get('body')
    if body is None or body == '':
        return {}
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError:
            raise ValidationError('Invalid JSON body')
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def get_path_param(event: dict, param_name: str) -> str:
    """Path parameter value, or None when the route has none."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def get_query_param(event: dict, param_name: str, default: str = None) -> str:
    """Query string parameter value, or default."""
    params = event.get('queryStringParameters') or {}
    return params.get(param_name, default)
