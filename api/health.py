from flask import Blueprint, current_app

bp = Blueprint("health", __name__)

VERSION = "1.0.0"


@bp.get("/health")
def health():
    """
    Health check (API and credential store)
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
            credential_store:
              type: string
              example: ok
      503:
        description: Credential store unreachable
    """
    store_ok = current_app.extensions["credential_store"].ping()
    body = {
        "status": "ok" if store_ok else "degraded",
        "version": VERSION,
        "credential_store": "ok" if store_ok else "unavailable",
    }
    return body, 200 if store_ok else 503
