"""
A&R prospect pipeline vocabulary and summaries.

Stages carry no transition rules: a prospect may move from any stage to
any other. Only membership in STAGES is checked on write.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

ACTIVE_STAGES = ['contacted', 'internal_review', 'offer_sent', 'negotiating', 'signed']
STAGES = ACTIVE_STAGES + ['passed']
DEFAULT_STAGE = 'contacted'

PRIORITIES = ['low', 'medium', 'high']
DEFAULT_PRIORITY = 'medium'

ENGAGEMENT_TYPES = [
    'call', 'email', 'dm', 'meeting', 'show', 'intro', 'deal_sent',
    'discovered', 'in_conversation', 'materials_requested', 'on_hold',
]
DEAL_STATUSES = ['not_discussed', 'discussing', 'offer_sent', 'under_negotiation', 'signed', 'passed']
DEAL_TYPES = ['distribution', 'frontline_record', 'partnership', 'publishing']

# "passed" is shown to users as Declined
STAGE_LABELS = {'passed': 'Declined'}


def stage_label(stage: str) -> str:
    """internal_review -> Internal Review"""
    if stage in STAGE_LABELS:
        return STAGE_LABELS[stage]
    return stage.replace('_', ' ').title()


def validate_prospect_fields(values: Dict) -> Optional[str]:
    """Return an error message for a blank or unknown stage/priority, else None"""
    if 'stage' in values and values['stage'] is None:
        return "stage cannot be empty"
    if 'priority' in values and values['priority'] is None:
        return "priority cannot be empty"
    stage = values.get('stage')
    if stage is not None and stage not in STAGES:
        return f"Invalid stage '{stage}'. Must be one of: {', '.join(STAGES)}"
    priority = values.get('priority')
    if priority is not None and priority not in PRIORITIES:
        return f"Invalid priority '{priority}'. Must be one of: {', '.join(PRIORITIES)}"
    return None


def stage_counts(prospects: Iterable[Dict]) -> Dict:
    """
    Pipeline summary for the overview widget

    Returns:
        {total, stages: [{stage, label, count}] for active stages with
         count > 0 in pipeline order, passed: count}
    """
    prospects = list(prospects)
    counts = {}
    for p in prospects:
        counts[p.get('stage')] = counts.get(p.get('stage'), 0) + 1

    return {
        'total': len(prospects),
        'stages': [
            {'stage': s, 'label': stage_label(s), 'count': counts[s]}
            for s in ACTIVE_STAGES if counts.get(s)
        ],
        'passed': counts.get('passed', 0),
    }


def group_by_stage(prospects: Iterable[Dict]) -> Dict[str, List[Dict]]:
    """Board columns: every active stage (possibly empty) plus passed"""
    board = {s: [] for s in STAGES}
    for p in prospects:
        if p.get('stage') in board:
            board[p['stage']].append(p)
    return board


def follow_up_status(follow_up, today: date = None) -> Optional[Dict]:
    """
    Describe how urgent a prospect's next follow-up is

    Returns:
        None without a date, else {status, days, label} where status is
        'overdue', 'soon' (within 3 days) or 'scheduled'
    """
    if not follow_up:
        return None
    if isinstance(follow_up, datetime):
        follow_up = follow_up.date()
    elif isinstance(follow_up, str):
        follow_up = date.fromisoformat(follow_up[:10])

    today = today or date.today()
    days = (follow_up - today).days

    if days < 0:
        return {'status': 'overdue', 'days': days, 'label': f"{abs(days)}d overdue"}
    if days <= 3:
        return {'status': 'soon', 'days': days, 'label': f"{days}d"}
    return {'status': 'scheduled', 'days': days, 'label': f"{follow_up:%b} {follow_up.day}"}
