from flask import request

from ..errors import BadRequest


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')
    return data


def get_text(data, field):
    value = data.get(field)
    return value.strip() if isinstance(value, str) else ''
