# File: site_lens/report/__init__.py
"""site_lens.report: Сохранение отчётов обхода, используемое CLI и тестами."""

from __future__ import annotations

from .json_report import render_json

__all__ = ["render_json"]
