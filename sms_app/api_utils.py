from flask import jsonify


def api_success(data=None, meta=None, status=200):
    body = {"success": True, "data": data if data is not None else {}, "meta": meta or {}}
    return jsonify(body), status


def api_error(code="error", message="", status=400, details=None):
    error = {"code": code, "message": message}
    if details:
        error.update(details)
    body = {"success": False, "error": error}
    return jsonify(body), status
