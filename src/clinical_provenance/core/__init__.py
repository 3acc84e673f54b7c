# ============================================================================
# src/clinical_provenance/core/__init__.py
# ============================================================================
"""
Core components: confidence model, job store, audit trail, provenance.

Import from the submodules directly, e.g.
    from src.clinical_provenance.core.confidence import clamp
"""
