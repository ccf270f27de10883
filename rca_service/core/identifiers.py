"""Utilities for generating identifiers used across the service."""

from __future__ import annotations

import uuid


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex}"
