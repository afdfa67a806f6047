from __future__ import annotations

import argparse
import logging
import os
import sys

# Allow running without installing the package (repo-local usage).
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

from handtree.app import HandTreeApp  # noqa: E402
from handtree.config import AppConfig, add_arguments  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser(description="Fractal tree that grows as you open your hand.")
    add_arguments(ap)
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    app = HandTreeApp(AppConfig.from_args(args))
    frames = app.run()
    logging.getLogger(__name__).info("Drew %d frames", frames)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
