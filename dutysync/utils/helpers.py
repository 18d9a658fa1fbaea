"""Request-parsing helpers shared by the blueprints."""

from flask import request

from dutysync.utils.errors import E, api_error


def json_body():
    """The request's JSON body as a dict; an empty body reads as ``{}``.

        data, err = json_body()
        if err:
            return err
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return data, None


def require_int(data: dict, key: str):
    """Read a required integer field from a JSON body.

    Tuple-return, like the rest of the view helpers:
        value, err = require_int(data, "slot_a_id")
        if err:
            return err
    """
    raw = data.get(key)
    if raw is None or raw == "":
        return None, api_error(E.VALIDATION_REQUIRED, f"{key} is required", details={key: "required"})
    if isinstance(raw, bool):
        return None, api_error(E.VALIDATION_INVALID, f"{key} must be an integer", details={key: raw})
    try:
        return int(raw), None
    except (TypeError, ValueError):
        return None, api_error(E.VALIDATION_INVALID, f"{key} must be an integer", details={key: raw})
