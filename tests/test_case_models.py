"""Tests for the case lifecycle order and case models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from dispute_core_lib.models import Case, CaseDocument, CaseStatus, CaseStatusTransition, is_valid_transition


# ============================================================
# Lifecycle Order
# ============================================================

class TestCaseStatusOrder:

    def test_order_runs_from_intake_to_judgment(self):
        ordered = CaseStatus.ordered()
        assert ordered[0] == CaseStatus.NEW_INTAKE
        assert ordered[-1] == CaseStatus.JUDGMENT
        assert len(ordered) == 10

    @pytest.mark.parametrize("status,expected", [
        (CaseStatus.NEW_INTAKE, 10),
        (CaseStatus.DOCS_UPLOADED, 20),
        (CaseStatus.ANALYZED, 30),
        (CaseStatus.SERVED, 60),
        (CaseStatus.JUDGMENT, 100),
    ])
    def test_progress_percentage_follows_position(self, status, expected):
        assert status.progress_percentage == expected

    def test_only_judgment_is_terminal(self):
        assert [s for s in CaseStatus if s.is_terminal] == [CaseStatus.JUDGMENT]


class TestTransitionRules:

    def test_forward_moves_may_skip_steps(self):
        assert is_valid_transition(CaseStatus.NEW_INTAKE, CaseStatus.ANALYZED)
        assert is_valid_transition(CaseStatus.DOCS_UPLOADED, CaseStatus.FILED)

    def test_backward_move_rejected(self):
        assert not is_valid_transition(CaseStatus.LETTER_DRAFTED, CaseStatus.ANALYZED)
        assert not is_valid_transition(CaseStatus.DOCS_UPLOADED, CaseStatus.NEW_INTAKE)

    def test_analyzed_may_return_to_uploads(self):
        assert is_valid_transition(CaseStatus.ANALYZED, CaseStatus.DOCS_UPLOADED)

    def test_same_status_is_valid(self):
        assert is_valid_transition(CaseStatus.SERVED, CaseStatus.SERVED)

    def test_nothing_leaves_judgment(self):
        for status in CaseStatus:
            if status != CaseStatus.JUDGMENT:
                assert not is_valid_transition(CaseStatus.JUDGMENT, status)

    def test_transition_record_must_change_status(self):
        with pytest.raises(ValidationError):
            CaseStatusTransition(from_status=CaseStatus.ANALYZED, to_status=CaseStatus.ANALYZED)

    def test_transition_record_rejects_regression(self):
        with pytest.raises(ValidationError):
            CaseStatusTransition(from_status=CaseStatus.FILED, to_status=CaseStatus.SERVED)


# ============================================================
# Models
# ============================================================

class TestCaseModel:

    def test_title_is_stripped(self):
        case = Case(owner_user_id="u1", title="  Borg  ")
        assert case.title == "Borg"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            Case(owner_user_id="u1", title="   ")

    def test_created_after_updated_rejected(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            Case(owner_user_id="u1", title="Borg", created_at=now, updated_at=now - timedelta(seconds=1))

    def test_progress_delegates_to_status(self):
        case = Case(owner_user_id="u1", title="Borg", status=CaseStatus.FILED)
        assert case.progress_percentage == 80
        assert not case.is_terminal


class TestCaseDocument:

    @pytest.mark.parametrize("filename,mimetype,expected", [
        ("contract.pdf", "application/pdf", "pdf"),
        ("scan.PDF", "application/octet-stream", "pdf"),
        ("foto.jpg", "image/jpeg", "img"),
        ("brief.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
        ("notities.txt", "text/plain", "txt"),
    ])
    def test_file_type(self, filename, mimetype, expected):
        document = CaseDocument(case_id="c1", filename=filename, mimetype=mimetype)
        assert document.file_type == expected
