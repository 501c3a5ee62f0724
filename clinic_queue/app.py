"""WSGI entry for the queue API (``flask --app clinic_queue.app run``)."""

from __future__ import annotations

import os

from . import APP_HOST, APP_PORT, create_app


app = create_app()


if __name__ == "__main__":
    app.run(
        host=os.getenv("CLINIC_HOST", APP_HOST),
        port=int(os.getenv("CLINIC_PORT", APP_PORT)),
        debug=False,
    )
