# ============================================================================
# src/clinical_provenance/config/__init__.py
# ============================================================================
"""
Convenient imports for all settings
"""

from .base_config import base_settings
from .model_config import model_settings
from .thresholds_config import threshold_settings
from .logging_config import logging_settings
