# lambdas/shared/api_gateway.py
"""
Helpers for API Gateway / Lambda function URL proxy events.

Handles both payload formats: REST APIs put the verb in `httpMethod`, HTTP APIs
and function URLs put it under `requestContext.http.method`.
"""
import base64
import hmac
import json
from urllib.parse import parse_qs

from lambdas.shared.settings import get_settings


def cors_headers() -> dict:
    return {
        'Content-Type': 'application/json',
        'Access-Control-Allow-Origin': get_settings().allowed_origin,
        'Access-Control-Allow-Headers': 'Authorization, X-Requested-With, X-Trigger-Token, Content-Type, Accept, Origin',
        'Access-Control-Allow-Methods': 'GET, OPTIONS, POST',
    }


def build_response(status_code: int, body: dict) -> dict:
    """Helper function to build the proxy response."""
    return {
        'statusCode': status_code,
        'headers': cors_headers(),
        'body': json.dumps(body, ensure_ascii=False, default=str),
    }


def slash_response(text: str, status_code: int = 200) -> dict:
    """Mattermost shows `text` of a slash command response to the invoking user only."""
    return build_response(status_code, {'response_type': 'ephemeral', 'text': text})


def get_method(event: dict) -> str:
    method = event.get('httpMethod') or event.get('requestContext', {}).get('http', {}).get('method', '')
    return method.upper()


def is_preflight(event: dict) -> bool:
    return get_method(event) == 'OPTIONS'


def preflight_response() -> dict:
    return build_response(200, {'message': 'ok'})


def get_query_params(event: dict) -> dict:
    return event.get('queryStringParameters') or {}


def get_flag(params: dict, name: str) -> bool:
    return str(params.get(name, '')).lower() == 'true'


def parse_form_body(event: dict) -> dict:
    """
    Decodes a form-urlencoded body (what Mattermost slash commands send) into a
    flat dict keeping the first value of each field.
    """
    raw = event.get('body') or ''
    if event.get('isBase64Encoded'):
        raw = base64.b64decode(raw).decode('utf-8')
    parsed = parse_qs(raw, keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items() if values}


TRIGGER_TOKEN_HEADER = 'x-trigger-token'


def is_http_event(event: dict) -> bool:
    """Scheduled (EventBridge) invocations carry neither HTTP payload marker."""
    return bool(event.get('httpMethod') or event.get('requestContext', {}).get('http'))


def get_header(event: dict, name: str) -> str:
    headers = event.get('headers') or {}
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value or ''
    return ''


def is_authorized_trigger(event: dict, expected_token: str) -> bool:
    """
    HTTP calls to the scheduled lambdas must send the configured trigger token.
    An unset token rejects every HTTP call; scheduled events always pass.
    """
    if not is_http_event(event):
        return True
    if not expected_token:
        return False
    return hmac.compare_digest(get_header(event, TRIGGER_TOKEN_HEADER).encode(), expected_token.encode())
