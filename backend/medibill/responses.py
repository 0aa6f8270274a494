# Overview: JSON envelope helpers shared by every blueprint.

from __future__ import annotations

from flask import jsonify, request

from .errors import InternalFailure, ServiceError, ValidationError
from .time_utils import parse_iso_datetime


def ok(data=None, message: str | None = None, status: int = 200, **extra):
    payload = {"success": True}
    if data is not None:
        payload["data"] = data
    if message:
        payload["message"] = message
    payload.update(extra)
    return jsonify(payload), status


def fail(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code


def internal_error():
    return fail(InternalFailure("Internal server error"))


def int_arg(name: str, default: int | None = None, *, minimum: int | None = None, maximum: int | None = None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be at most {maximum}")
    return value


def datetime_arg(name: str, *, end_of_day: bool = False):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw, end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }
