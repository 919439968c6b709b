"""
Unit tests for pipeline.py
"""
from datetime import date

from pipeline import (
    STAGES,
    follow_up_status,
    group_by_stage,
    stage_counts,
    stage_label,
    validate_prospect_fields,
)


class TestStages:

    def test_labels(self):
        assert stage_label('internal_review') == 'Internal Review'
        assert stage_label('offer_sent') == 'Offer Sent'
        assert stage_label('passed') == 'Declined'

    def test_any_known_stage_is_valid(self):
        """Stage moves are free-form; only the value is checked"""
        for stage in STAGES:
            assert validate_prospect_fields({'stage': stage}) is None

    def test_unknown_stage_and_priority(self):
        assert 'Invalid stage' in validate_prospect_fields({'stage': 'maybe'})
        assert 'Invalid priority' in validate_prospect_fields({'priority': 'urgent'})
        assert validate_prospect_fields({}) is None

    def test_explicit_blank_rejected(self):
        assert validate_prospect_fields({'stage': None}) == 'stage cannot be empty'
        assert validate_prospect_fields({'priority': None}) == 'priority cannot be empty'


class TestStageCounts:

    def test_counts(self):
        prospects = [{'stage': 'contacted'}, {'stage': 'contacted'},
                     {'stage': 'signed'}, {'stage': 'passed'}]

        counts = stage_counts(prospects)

        assert counts['total'] == 4
        assert counts['passed'] == 1
        assert counts['stages'] == [
            {'stage': 'contacted', 'label': 'Contacted', 'count': 2},
            {'stage': 'signed', 'label': 'Signed', 'count': 1},
        ]

    def test_empty(self):
        assert stage_counts([]) == {'total': 0, 'stages': [], 'passed': 0}

    def test_board_has_every_stage(self):
        board = group_by_stage([{'id': 1, 'stage': 'negotiating'}])
        assert set(board) == set(STAGES)
        assert board['negotiating'] == [{'id': 1, 'stage': 'negotiating'}]
        assert board['contacted'] == []


class TestFollowUp:
    TODAY = date(2026, 3, 10)

    def test_none(self):
        assert follow_up_status(None, today=self.TODAY) is None

    def test_overdue(self):
        status = follow_up_status('2026-03-07', today=self.TODAY)
        assert status == {'status': 'overdue', 'days': -3, 'label': '3d overdue'}

    def test_soon(self):
        assert follow_up_status(date(2026, 3, 12), today=self.TODAY)['status'] == 'soon'
        assert follow_up_status(date(2026, 3, 10), today=self.TODAY)['label'] == '0d'

    def test_scheduled(self):
        status = follow_up_status('2026-04-02', today=self.TODAY)
        assert status['status'] == 'scheduled'
        assert status['label'] == 'Apr 2'
