from __future__ import annotations

import logging
import os
import shutil
import ssl
import subprocess
import urllib.request


logger = logging.getLogger(__name__)

HAND_LANDMARKER_TASK_URL = (
    "https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/latest/hand_landmarker.task"
)


def _ssl_context() -> ssl.SSLContext:
    # python.org macOS builds often ship without root certificates; certifi has them.
    try:
        import certifi  # type: ignore

        return ssl.create_default_context(cafile=certifi.where())
    except ImportError:
        return ssl.create_default_context()


def _remove_partial(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


def _download_urllib(url: str, path: str, timeout_s: int) -> None:
    with urllib.request.urlopen(url, context=_ssl_context(), timeout=timeout_s) as r, open(path, "wb") as f:
        shutil.copyfileobj(r, f)


def _download_curl(url: str, path: str) -> str:
    """Returns curl's stderr; empty string on success."""
    if shutil.which("curl") is None:
        return "curl not found on PATH"
    proc = subprocess.run(
        ["curl", "-fL", "-o", path, url],
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    if proc.returncode == 0 and os.path.exists(path) and os.path.getsize(path) > 0:
        return ""
    return proc.stderr.strip() or f"curl exited with {proc.returncode}"


def ensure_hand_landmarker_task(model_path: str, *, url: str = HAND_LANDMARKER_TASK_URL, timeout_s: int = 30) -> str:
    """
    Make sure the MediaPipe Tasks `hand_landmarker.task` model is at `model_path`.

    Missing files are fetched from the MediaPipe model bucket, first with urllib and
    then with curl, which often copes with a broken Python certificate store.
    """

    if os.path.exists(model_path):
        return model_path

    os.makedirs(os.path.dirname(model_path) or ".", exist_ok=True)
    logger.info("Downloading hand landmarker model to %s", model_path)

    try:
        _download_urllib(url, model_path, timeout_s)
        return model_path
    except (OSError, ssl.SSLError) as e:
        logger.warning("Model download via urllib failed (%s); retrying with curl", e)
        _remove_partial(model_path)
        first_error = e

    curl_err = _download_curl(url, model_path)
    if not curl_err:
        return model_path
    _remove_partial(model_path)

    raise RuntimeError(
        "Missing MediaPipe Tasks model file and auto-download failed.\n\n"
        f"Expected model at: {model_path}\n"
        f"URL: {url}\n\n"
        "Download it manually:\n"
        f'  mkdir -p "{os.path.dirname(model_path) or "."}"\n'
        f'  curl -L -o "{model_path}" "{url}"\n\n'
        f"curl: {curl_err}\n"
    ) from first_error
