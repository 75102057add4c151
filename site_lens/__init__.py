# site_lens/__init__.py
"""
SiteLens package initializer.
Defines package version; the CLI entry point lives in ``site_lens.cli``.
"""
__version__ = "0.1.0"
