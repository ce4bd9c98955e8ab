"""Shared utilities for plano."""

from utils.env_utils import env_value
from utils.uri import is_uri

__all__ = ["env_value", "is_uri"]
