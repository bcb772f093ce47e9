# canelink/utils/responses.py

from flask import jsonify, request

from canelink.utils.helpers import int_arg, to_json

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def ok(data=None, message=None, status=200, **extra):
    """{success: true, message?, data?, ...extra}"""
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = to_json(data)
    body.update(to_json(extra))
    return jsonify(body), status


def page_args(default_limit: int = DEFAULT_LIMIT):
    page = int_arg(request.args, "page", 1)
    limit = int_arg(request.args, "limit", default_limit, maximum=MAX_LIMIT)
    return page, limit


def body() -> dict:
    return request.get_json(silent=True) or {}
