"""Helpers for emitting JS text that ends up inside an HTML ``<script>`` block."""

from __future__ import annotations

import json
from typing import Any


def script_safe(text: str) -> str:
    """Escape ``</`` so embedded text cannot close the enclosing script element.

    Only valid on JSON text or JS string literals, where ``<\\/`` reads back
    as ``</``.
    """
    return text.replace("</", "<\\/")


def js_literal(value: Any, **kwargs: Any) -> str:
    return script_safe(json.dumps(value, **kwargs))
