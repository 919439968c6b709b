"""
Label Overview Aggregations

Pure functions that turn raw team rows (artists, budgets, transactions,
tasks, initiatives, memberships) into the numbers shown on the overview
dashboard: financial snapshot, budget utilization, quarterly P&L, spend
per act and staff productivity.

Transaction amounts are signed inconsistently in the source data, so every
sum uses the absolute value and the `type` column ('revenue' / 'expense')
decides which side it lands on.
"""

from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from pipeline import stage_counts

OTHER_DEPARTMENT = 'Other'


def fmt(n) -> str:
    """$ + absolute value with thousands separators"""
    value = abs(n or 0)
    if float(value).is_integer():
        return f"${int(value):,}"
    return f"${float(value):,.2f}".rstrip('0').rstrip('.')


def fmt_signed(n) -> str:
    return f"{'-' if (n or 0) < 0 else ''}{fmt(n)}"


def _amount(row) -> float:
    return abs(float(row.get('amount') or 0))


def _sum(rows, kind: str) -> float:
    return sum(_amount(r) for r in rows if r.get('type') == kind)


def _to_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utilization_pct(spent: float, budget: float) -> float:
    """Percent of budget spent, capped at 100; 0 when there is no budget"""
    if budget <= 0:
        return 0
    return min(spent / budget * 100, 100)


def summarize_finances(budgets: List[Dict], transactions: List[Dict], tasks: List[Dict],
                       now: datetime = None) -> Dict:
    """Totals for the financial snapshot and budget utilization sections"""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    total_budget = sum(float(b.get('amount') or 0) for b in budgets)
    total_revenue = _sum(transactions, 'revenue')
    total_expenses = _sum(transactions, 'expense')

    open_tasks = [t for t in tasks if not t.get('is_completed')]
    overdue = [t for t in open_tasks if t.get('due_date') and _to_datetime(t['due_date']) < now]

    return {
        'total_budget': total_budget,
        'total_revenue': total_revenue,
        'total_expenses': total_expenses,
        'net_profit': total_revenue - total_expenses,
        'budget_remaining': total_budget - total_expenses,
        'budget_utilization': utilization_pct(total_expenses, total_budget),
        'open_tasks': len(open_tasks),
        'overdue_tasks': len(overdue),
    }


def _quarter_start(d: date) -> date:
    return date(d.year, 3 * ((d.month - 1) // 3) + 1, 1)


def _shift_quarter(start: date, offset: int) -> date:
    month_index = start.year * 12 + (start.month - 1) + 3 * offset
    return date(month_index // 12, month_index % 12 + 1, 1)


def quarter_windows(today: date = None) -> List[Dict]:
    """Two previous quarters, the current one and the next, oldest first"""
    today = today or date.today()
    current = _quarter_start(today)
    windows = []
    for offset in range(-2, 2):
        start = _shift_quarter(current, offset)
        end = _shift_quarter(start, 1)
        windows.append({
            'label': f"{start.year} Q{(start.month - 1) // 3 + 1}",
            'start': start,
            'end': end,
        })
    return windows


def departments(budgets: List[Dict]) -> List[str]:
    """Distinct budget labels, sorted"""
    return sorted({b['label'] for b in budgets if b.get('label')})


def quarterly_pnl(budgets: List[Dict], transactions: List[Dict], today: date = None) -> Dict:
    """
    Revenue, expenses, gross profit and per-department expenses by quarter

    Expenses without a budget line are reported under "Other".
    """
    depts = departments(budgets)
    label_for_budget = {b['id']: b['label'] for b in budgets if b.get('id')}

    quarters = []
    for window in quarter_windows(today):
        q_txns = [t for t in transactions
                  if t.get('transaction_date') is not None
                  and window['start'] <= _to_date(t['transaction_date']) < window['end']]
        revenue = _sum(q_txns, 'revenue')
        expenses = _sum(q_txns, 'expense')

        dept_expenses = {d: 0.0 for d in depts}
        uncategorized = 0.0
        for t in q_txns:
            if t.get('type') != 'expense':
                continue
            label = label_for_budget.get(t.get('budget_id')) if t.get('budget_id') else None
            if label:
                dept_expenses[label] += _amount(t)
            elif not t.get('budget_id'):
                uncategorized += _amount(t)
        if uncategorized > 0:
            dept_expenses[OTHER_DEPARTMENT] = uncategorized

        quarters.append({
            'label': window['label'],
            'revenue': revenue,
            'expenses': expenses,
            'gp': revenue - expenses,
            'dept_expenses': dept_expenses,
        })

    rows = list(depts)
    if any(q['dept_expenses'].get(OTHER_DEPARTMENT) for q in quarters) and OTHER_DEPARTMENT not in rows:
        rows.append(OTHER_DEPARTMENT)
    dept_totals = {d: sum(q['dept_expenses'].get(d, 0) for q in quarters) for d in rows}

    return {
        'quarters': quarters,
        'departments': [d for d in rows if dept_totals[d] > 0],
        'department_totals': {d: v for d, v in dept_totals.items() if v > 0},
    }


def artist_breakdown(artists: List[Dict], budgets: List[Dict], transactions: List[Dict],
                     tasks: List[Dict], initiatives: List[Dict]) -> List[Dict]:
    """Spend per act, highest budget first"""
    result = []
    for artist in artists:
        a_id = artist['id']
        a_budgets = [b for b in budgets if b.get('artist_id') == a_id]
        a_txns = [t for t in transactions if t.get('artist_id') == a_id]
        a_tasks = [t for t in tasks if t.get('artist_id') == a_id]

        budget = sum(float(b.get('amount') or 0) for b in a_budgets)
        revenue = _sum(a_txns, 'revenue')
        expenses = _sum(a_txns, 'expense')

        categories = []
        for b in a_budgets:
            amount = float(b.get('amount') or 0)
            spent = sum(_amount(t) for t in a_txns if t.get('budget_id') == b.get('id'))
            categories.append({
                'label': b.get('label'),
                'budget': amount,
                'spent': spent,
                'pct': spent / amount * 100 if amount > 0 else 0,
            })

        result.append({
            'id': a_id,
            'name': artist.get('name'),
            'avatar_url': artist.get('avatar_url'),
            'budget': budget,
            'revenue': revenue,
            'expenses': expenses,
            'gp': revenue - expenses,
            'completed_tasks': sum(1 for t in a_tasks if t.get('is_completed')),
            'total_tasks': len(a_tasks),
            'utilization': utilization_pct(expenses, budget),
            'campaign_count': sum(1 for i in initiatives if i.get('artist_id') == a_id),
            'categories': categories,
        })

    return sorted(result, key=lambda r: r['budget'], reverse=True)


def _revenue_from_tasks(transactions: Iterable[Dict], task_ids) -> float:
    return sum(_amount(t) for t in transactions
               if t.get('type') == 'revenue' and t.get('task_id') and t['task_id'] in task_ids)


def staff_productivity(memberships: List[Dict], tasks: List[Dict], transactions: List[Dict]) -> List[Dict]:
    """
    Productivity score per member:
    50% completion rate + 30% on-time rate + 20% revenue relative to the
    top earner, rounded and capped at 100.
    """
    completed_ids = {}
    for m in memberships:
        completed_ids[m['user_id']] = {
            t['id'] for t in tasks
            if t.get('assigned_to') == m['user_id'] and t.get('is_completed')
        }

    max_revenue = max([1.0] + [_revenue_from_tasks(transactions, ids) for ids in completed_ids.values()])

    members = []
    for m in memberships:
        member_tasks = [t for t in tasks if t.get('assigned_to') == m['user_id']]
        assigned = len(member_tasks)
        completed = sum(1 for t in member_tasks if t.get('is_completed'))
        on_time = sum(
            1 for t in member_tasks
            if t.get('is_completed') and t.get('due_date') and t.get('completed_at')
            and _to_datetime(t['completed_at']) <= _to_datetime(t['due_date'])
        )
        revenue = _revenue_from_tasks(transactions, completed_ids[m['user_id']])

        completion_rate = completed / assigned if assigned else 0
        on_time_rate = on_time / completed if completed else 0
        score = int(completion_rate * 50 + on_time_rate * 30 + revenue / max_revenue * 20 + 0.5)

        members.append({
            'user_id': m['user_id'],
            'full_name': m.get('full_name') or 'Unknown',
            'avatar_url': m.get('avatar_url'),
            'role': m.get('role'),
            'tasks_assigned': assigned,
            'tasks_completed': completed,
            'tasks_on_time': on_time,
            'revenue_logged': revenue,
            'productivity_score': min(score, 100),
        })

    return sorted(members, key=lambda m: m['productivity_score'], reverse=True)


def build_overview(artists, budgets, transactions, tasks, initiatives, memberships,
                   prospects, now: datetime = None) -> Dict:
    """Everything the overview dashboard renders, in one payload"""
    now = now or datetime.now(timezone.utc)
    return {
        'summary': summarize_finances(budgets, transactions, tasks, now=now),
        'quarterly_pnl': quarterly_pnl(budgets, transactions, today=now.date()),
        'spending_per_act': artist_breakdown(artists, budgets, transactions, tasks, initiatives),
        'staff_productivity': staff_productivity(memberships, tasks, transactions),
        'ar_pipeline': stage_counts(prospects),
        'artist_count': len(artists),
    }
