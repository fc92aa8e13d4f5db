# astroproxy/version.py
from __future__ import annotations
import os

# Single place to bump the app version (overridable via env for CI/preview)
VERSION = os.getenv("ASTROPROXY_VERSION", "0.1.0")
SERVICE_NAME = "astroproxy"
USER_AGENT = f"{SERVICE_NAME}/{VERSION}"
