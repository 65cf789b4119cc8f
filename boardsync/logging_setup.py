from __future__ import annotations

import logging
import sys

from boardsync.config import settings


def setup_logging(level: str | None = None) -> None:
  """Configure the root logger once for the API process."""
  handler = logging.StreamHandler(sys.stdout)
  handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-4s %(name)s : %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))

  root = logging.getLogger()
  root.setLevel((level or settings.log_level or "INFO").upper())
  root.handlers.clear()
  root.addHandler(handler)

  for name in ["uvicorn", "uvicorn.error", "fastapi"]:
    lg = logging.getLogger(name)
    lg.handlers.clear()
    lg.propagate = True

  # engineio/socketio log every packet at INFO
  logging.getLogger("engineio.server").setLevel(logging.WARNING)
  logging.getLogger("socketio.server").setLevel(logging.WARNING)
