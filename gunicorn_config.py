"""
Gunicorn config for the ParcelLens API.

    gunicorn -c gunicorn_config.py app:app

Binds to $PORT (5001 by default, same as `python app.py` and smoke_test).
Analysis requests fan out to three provider threads each, so workers use
threads rather than extra processes. Once the server accepts connections,
when_ready runs the smoke test against it; a failure is logged and the
server keeps running. Set SMOKE_ON_START=0 to skip it.
"""

import logging
import os
import threading
import time

DEFAULT_PORT = "5001"

bind = f"0.0.0.0:{os.environ.get('PORT', DEFAULT_PORT)}"
workers = int(os.environ.get("WEB_CONCURRENCY", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
# A live-routing estimate makes up to six route calls with a 10 s timeout each
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "60"))

logger = logging.getLogger("gunicorn.error")


def smoke_base_url() -> str:
    return f"http://127.0.0.1:{os.environ.get('PORT', DEFAULT_PORT)}"


def _run_smoke(base_url: str, grace_s: float = 2.0):
    time.sleep(grace_s)  # let workers finish booting
    try:
        from smoke_test import run_tests
        logger.info("ParcelLens smoke test starting against %s", base_url)
        if run_tests(base_url):
            logger.info("ParcelLens smoke test PASSED")
        else:
            logger.error("ParcelLens smoke test FAILED")
    except Exception:
        logger.exception("ParcelLens smoke test crashed")


def when_ready(server):
    if os.environ.get("SMOKE_ON_START", "1") == "0":
        logger.info("Smoke test on start disabled")
        return
    threading.Thread(target=_run_smoke, args=(smoke_base_url(),), daemon=True).start()
