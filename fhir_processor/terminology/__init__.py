"""Terminology lookups."""

from .code_master import CodeMaster

__all__ = ["CodeMaster"]
