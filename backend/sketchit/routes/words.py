from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

bp = Blueprint("words", __name__)

MAX_COUNT = 10


@bp.get("/words")
def get_words():
    try:
        count = int(request.args.get("count", "3"))
    except ValueError:
        count = 3
    count = max(1, min(count, MAX_COUNT))

    service = current_app.extensions["sketchit"]
    return jsonify({"words": service.pick_words(count)})
