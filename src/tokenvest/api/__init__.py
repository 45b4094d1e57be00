"""
tokenvest API Module

Flask blueprint and application factory exposing the vesting vault.
"""

from .app import create_app
from .vesting_bp import vesting_bp

__all__ = ["create_app", "vesting_bp"]
