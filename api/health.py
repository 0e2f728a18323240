from flask import Blueprint, current_app

from models.token_store import SQLTokenStore

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            store:
              type: string
              example: ok
      503:
        description: Token store unreachable
    """
    store = current_app.extensions["auth"].store
    if isinstance(store, SQLTokenStore) and not store.storage.ping():
        return {"status": "degraded", "version": "1.0.0", "store": "unavailable"}, 503
    return {"status": "ok", "version": "1.0.0", "store": "ok"}, 200
