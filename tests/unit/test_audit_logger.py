# ============================================================================
# FILE: tests/unit/test_audit_logger.py
# ============================================================================
"""
Unit tests for the audit trail
"""

from src.clinical_provenance.core.audit import AuditLogger


def test_record_and_trail(audit_logger):
    """Test events come back oldest first with parsed metadata"""
    audit_logger.record("document.extract_structured", {"fields_present": ["lvef"], "field_count": 1}, resource_id="doc-1")
    audit_logger.record("document.extract_identity", {"has_name": True}, resource_id="doc-1")
    audit_logger.record("document.extract_failed", {"reason": "no object found"}, resource_id="doc-2")

    trail = audit_logger.get_trail("doc-1")

    assert [e["event"] for e in trail] == ["document.extract_structured", "document.extract_identity"]
    assert trail[0]["metadata"] == {"fields_present": ["lvef"], "field_count": 1}
    assert trail[0]["timestamp"]


def test_trail_empty(audit_logger):
    """Test unknown resources have no trail"""
    assert audit_logger.get_trail("nothing") == []


def test_database_created(tmp_path):
    """Test the database and parent directory are created"""
    db_path = tmp_path / "nested" / "audit.db"
    AuditLogger(db_path=db_path)
    assert db_path.exists()
