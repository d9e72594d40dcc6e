from flask import request

from parkease_api.services.errors import InvalidInput


def json_body():
    """Request JSON as a dict; an absent or unparseable body reads as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput('Request body must be a JSON object')
    return data


def require_strings(data, fields):
    for field in fields:
        value = data.get(field)
        if value is None or value == '':
            raise InvalidInput(f'Missing required field: {field}')
        if not isinstance(value, str):
            raise InvalidInput(f'Field {field} must be a string')
        if not value.strip():
            raise InvalidInput(f'Missing required field: {field}')


def optional_string(data, field):
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        raise InvalidInput(f'Field {field} must be a string')
    return value
