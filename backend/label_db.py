"""
Label Database Operations

All reads and writes against the label tables: teams, memberships,
invites, artists, tasks, finance (budgets, transactions, initiatives),
A&R prospects and performance snapshots.

Column names interpolated into SQL always come from the whitelists below,
never from the request.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from psycopg.types.json import Jsonb

from db_utils import get_db_connection

logger = logging.getLogger(__name__)

ARTIST_COLUMNS = (
    'name', 'avatar_url', 'banner_url', 'spotify_id', 'genres',
    'monthly_listeners', 'primary_focus', 'secondary_focus',
    'primary_goal', 'secondary_goal', 'primary_metric', 'secondary_metric',
)

TASK_COLUMNS = (
    'title', 'description', 'due_date', 'artist_id', 'team_id',
    'assigned_to', 'initiative_id', 'expense_amount',
)

PROSPECT_COLUMNS = (
    'artist_name', 'stage', 'priority', 'primary_genre', 'city',
    'spotify_uri', 'avatar_url', 'instagram', 'tiktok', 'youtube',
    'monthly_listeners', 'key_songs', 'notes', 'next_follow_up', 'owner_id',
)

ENGAGEMENT_COLUMNS = ('engagement_date', 'engagement_type', 'outcome', 'next_step', 'owner_id')

CONTACT_COLUMNS = ('name', 'role', 'email', 'phone')

DEAL_COLUMNS = ('deal_status', 'deal_type', 'type_specific_terms', 'notes')

SNAPSHOT_COLUMNS = (
    'lead_streams_total', 'feat_streams_total', 'daily_streams',
    'monthly_streams', 'monthly_listeners_all', 'est_monthly_revenue',
)

RAW_MARKDOWN_LIMIT = 10000


class InviteError(Exception):
    """Raised when an invite link cannot be accepted"""
    def __init__(self, message: str, status: int, already_member: bool = False):
        self.status = status
        self.already_member = already_member
        super().__init__(message)


def _insert(cur, table: str, values: Dict) -> dict:
    """INSERT one row from a column dict and return it"""
    columns = list(values)
    placeholders = ', '.join(['%s'] * len(columns))
    cur.execute(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
        tuple(values[c] for c in columns)
    )
    return cur.fetchone()


def _update(cur, table: str, row_id: str, values: Dict) -> Optional[dict]:
    """UPDATE one row by id from a column dict and return it"""
    assignments = ', '.join(f"{c} = %s" for c in values)
    cur.execute(
        f"UPDATE {table} SET {assignments} WHERE id = %s RETURNING *",
        tuple(values.values()) + (row_id,)
    )
    return cur.fetchone()


def _filter_columns(values: Dict, allowed) -> Dict:
    return {k: v for k, v in values.items() if k in allowed}


# ============================================================================
# TEAMS
# ============================================================================

def list_teams_for_user(user_id: str) -> List[dict]:
    """Teams the user belongs to, with the user's role in each"""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT t.id, t.name, t.avatar_url, tm.role
                FROM team_memberships tm
                JOIN teams t ON t.id = tm.team_id
                WHERE tm.user_id = %s
                ORDER BY t.name
            """, (user_id,))
            return cur.fetchall()


def create_team(name: str, user_id: str) -> dict:
    """Create a team and make the creator its owner in one transaction"""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            team = _insert(cur, 'teams', {'name': name, 'created_by': user_id})
            _insert(cur, 'team_memberships', {
                'user_id': user_id,
                'team_id': team['id'],
                'role': 'team_owner',
            })
            conn.commit()
            logger.info(f"User {user_id} created team {team['id']}")
            return team


def get_team_role(team_id: str, user_id: str) -> Optional[str]:
    """Return the user's role in the team, or None when not a member"""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT role FROM team_memberships
                WHERE team_id = %s AND user_id = %s
            """, (team_id, user_id))
            row = cur.fetchone()
            return row['role'] if row else None


def list_team_members(team_id: str) -> List[dict]:
    """Members of a team with their profile names"""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT tm.user_id, tm.role, p.full_name, p.avatar_url
                FROM team_memberships tm
                LEFT JOIN profiles p ON p.id = tm.user_id
                WHERE tm.team_id = %s
                ORDER BY p.full_name
            """, (team_id,))
            return cur.fetchall()


def accept_invite(token: str, user_id: str) -> dict:
    """
    Accept a team invite link

    Creates the membership and any artist permissions attached to the
    invite, then marks the invite as used.

    Raises:
        InviteError: with status 404 (unknown), 410 (expired or used)
            or 409 (already a member)
    """
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM invite_links WHERE token = %s", (token,))
            invite = cur.fetchone()
            if not invite:
                raise InviteError('Invalid invite link', 404)

            if invite['expires_at'] and invite['expires_at'] < datetime.now(timezone.utc):
                raise InviteError('This invite has expired', 410)

            if invite['used_at']:
                raise InviteError('This invite has already been used', 410)

            cur.execute("""
                SELECT id FROM team_memberships
                WHERE user_id = %s AND team_id = %s
            """, (user_id, invite['team_id']))
            if cur.fetchone():
                raise InviteError("You're already a member of this team", 409, already_member=True)

            _insert(cur, 'team_memberships', {
                'user_id': user_id,
                'team_id': invite['team_id'],
                'role': invite['role'],
            })

            for perm in invite.get('artist_permissions') or []:
                _insert(cur, 'artist_permissions', {
                    'user_id': user_id,
                    'artist_id': perm['artist_id'],
                    'permission': perm.get('permission') or 'view_access',
                })

            cur.execute(
                "UPDATE invite_links SET used_at = now() WHERE id = %s",
                (invite['id'],)
            )

            cur.execute("SELECT name FROM teams WHERE id = %s", (invite['team_id'],))
            team = cur.fetchone()

            cur.execute(
                "SELECT id, name, avatar_url FROM artists WHERE team_id = %s",
                (invite['team_id'],)
            )
            artists = cur.fetchall()

            conn.commit()
            logger.info(f"User {user_id} joined team {invite['team_id']} as {invite['role']}")

            return {
                'success': True,
                'team_name': team['name'] if team else None,
                'role': invite['role'],
                'artists': artists,
            }


# ============================================================================
# ARTISTS
# ============================================================================

def list_artists(team_id: str) -> List[dict]:
    """Roster for a team with initiative/task counts and budget lines"""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT a.*,
                    (SELECT COUNT(*) FROM initiatives i WHERE i.artist_id = a.id) AS initiative_count,
                    (SELECT COUNT(*) FROM tasks t WHERE t.artist_id = a.id) AS task_count,
                    COALESCE(
                        (SELECT json_agg(json_build_object('label', b.label, 'amount', b.amount))
                         FROM budgets b WHERE b.artist_id = a.id),
                        '[]'::json
                    ) AS budgets
                FROM artists a
                WHERE a.team_id = %s
                ORDER BY a.name
            """, (team_id,))
            return cur.fetchall()


def get_artist(artist_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM artists WHERE id = %s", (artist_id,))
            return cur.fetchone()


def create_artist(team_id: str, values: Dict) -> dict:
    row = _filter_columns(values, ARTIST_COLUMNS)
    row['team_id'] = team_id
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            artist = _insert(cur, 'artists', row)
            conn.commit()
            logger.info(f"Created artist {artist['id']} ({artist['name']}) in team {team_id}")
            return artist


def update_artist(artist_id: str, values: Dict) -> Optional[dict]:
    """Apply an inline edit; unknown columns are ignored"""
    row = _filter_columns(values, ARTIST_COLUMNS)
    if not row:
        return get_artist(artist_id)
    row['updated_at'] = datetime.now(timezone.utc)
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            artist = _update(cur, 'artists', artist_id, row)
            conn.commit()
            return artist


def list_artists_with_spotify(team_id: Optional[str] = None) -> List[dict]:
    """Artists that have a Spotify id, with their snapshot timestamp"""
    query = """
        SELECT a.id, a.name, a.spotify_id, a.team_id, s.scraped_at
        FROM artists a
        LEFT JOIN artist_performance_snapshots s ON s.artist_id = a.id
        WHERE a.spotify_id IS NOT NULL AND a.spotify_id <> ''
    """
    params = ()
    if team_id:
        query += " AND a.team_id = %s"
        params = (team_id,)
    query += " ORDER BY s.scraped_at NULLS FIRST, a.name"

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()


# ============================================================================
# TASKS
# ============================================================================

def list_tasks(team_id: Optional[str] = None, artist_id: Optional[str] = None) -> List[dict]:
    """Tasks for a team or an artist, open tasks first then by due date"""
    if not team_id and not artist_id:
        raise ValueError("Either team_id or artist_id must be provided")

    column, value = ('artist_id', artist_id) if artist_id else ('team_id', team_id)
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"""
                SELECT * FROM tasks
                WHERE {column} = %s
                ORDER BY is_completed, due_date NULLS LAST, created_at
            """, (value,))
            return cur.fetchall()


def get_task(task_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM tasks WHERE id = %s", (task_id,))
            return cur.fetchone()


def create_task(values: Dict) -> dict:
    row = _filter_columns(values, TASK_COLUMNS)
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            task = _insert(cur, 'tasks', row)
            conn.commit()
            return task


def set_task_completed(task_id: str, completed: bool) -> Optional[dict]:
    """Mark a task done (stamping completed_at) or reopen it"""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                UPDATE tasks
                SET is_completed = %s,
                    completed_at = CASE WHEN %s THEN now() ELSE NULL END,
                    updated_at = now()
                WHERE id = %s
                RETURNING *
            """, (completed, completed, task_id))
            task = cur.fetchone()
            conn.commit()
            return task


def delete_task(task_id: str) -> bool:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM tasks WHERE id = %s RETURNING id", (task_id,))
            deleted = cur.fetchone() is not None
            conn.commit()
            return deleted


# ============================================================================
# FINANCE
# ============================================================================

def _rows_for_artists(table: str, artist_ids: List[str]) -> List[dict]:
    if not artist_ids:
        return []
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT * FROM {table} WHERE artist_id = ANY(%s)",
                (list(artist_ids),)
            )
            return cur.fetchall()


def list_budgets(artist_ids: List[str]) -> List[dict]:
    return _rows_for_artists('budgets', artist_ids)


def list_transactions(artist_ids: List[str]) -> List[dict]:
    return _rows_for_artists('transactions', artist_ids)


def list_initiatives(artist_ids: List[str]) -> List[dict]:
    return _rows_for_artists('initiatives', artist_ids)


# ============================================================================
# PROSPECTS (A&R)
# ============================================================================

def list_prospects(team_id: str) -> List[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT * FROM prospects
                WHERE team_id = %s
                ORDER BY created_at DESC
            """, (team_id,))
            return cur.fetchall()


def get_prospect(prospect_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM prospects WHERE id = %s", (prospect_id,))
            return cur.fetchone()


def create_prospect(team_id: str, values: Dict) -> dict:
    row = _filter_columns(values, PROSPECT_COLUMNS)
    row['team_id'] = team_id
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            prospect = _insert(cur, 'prospects', row)
            conn.commit()
            return prospect


def update_prospect(prospect_id: str, values: Dict) -> Optional[dict]:
    """Update any prospect field; stage moves are not restricted"""
    row = _filter_columns(values, PROSPECT_COLUMNS)
    if not row:
        return get_prospect(prospect_id)
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            prospect = _update(cur, 'prospects', prospect_id, row)
            conn.commit()
            return prospect


def delete_prospect(prospect_id: str) -> bool:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM prospects WHERE id = %s RETURNING id", (prospect_id,))
            deleted = cur.fetchone() is not None
            conn.commit()
            return deleted


def list_engagements(prospect_id: str) -> List[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT * FROM prospect_engagements
                WHERE prospect_id = %s
                ORDER BY engagement_date DESC
            """, (prospect_id,))
            return cur.fetchall()


def create_engagement(prospect_id: str, values: Dict) -> dict:
    row = _filter_columns(values, ENGAGEMENT_COLUMNS)
    row['prospect_id'] = prospect_id
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            engagement = _insert(cur, 'prospect_engagements', row)
            conn.commit()
            return engagement


def list_contacts(prospect_id: str) -> List[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT * FROM prospect_contacts
                WHERE prospect_id = %s
                ORDER BY created_at DESC
            """, (prospect_id,))
            return cur.fetchall()


def create_contact(prospect_id: str, values: Dict) -> dict:
    row = _filter_columns(values, CONTACT_COLUMNS)
    row['prospect_id'] = prospect_id
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            contact = _insert(cur, 'prospect_contacts', row)
            conn.commit()
            return contact


def get_latest_deal(prospect_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT * FROM prospect_deals
                WHERE prospect_id = %s
                ORDER BY created_at DESC
                LIMIT 1
            """, (prospect_id,))
            return cur.fetchone()


def upsert_deal(prospect_id: str, values: Dict, deal_id: Optional[str] = None) -> dict:
    """Update the given deal, or insert a new one for the prospect"""
    row = _filter_columns(values, DEAL_COLUMNS)
    if 'type_specific_terms' in row and row['type_specific_terms'] is not None:
        row['type_specific_terms'] = Jsonb(row['type_specific_terms'])

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            if deal_id and row:
                deal = _update(cur, 'prospect_deals', deal_id, row)
            else:
                row['prospect_id'] = prospect_id
                deal = _insert(cur, 'prospect_deals', row)
            conn.commit()
            return deal


# ============================================================================
# PERFORMANCE SNAPSHOTS
# ============================================================================

def get_performance_snapshot(artist_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT id, artist_id, lead_streams_total, feat_streams_total,
                    daily_streams, monthly_streams, monthly_listeners_all,
                    est_monthly_revenue, scraped_at
                FROM artist_performance_snapshots
                WHERE artist_id = %s
            """, (artist_id,))
            return cur.fetchone()


def upsert_performance_snapshot(artist_id: str, data: Dict, raw_markdown: str = '') -> dict:
    """Replace the artist's snapshot wholesale (one row per artist)"""
    row = {c: data.get(c, 0) for c in SNAPSHOT_COLUMNS}
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"""
                INSERT INTO artist_performance_snapshots
                    (artist_id, {', '.join(SNAPSHOT_COLUMNS)}, raw_markdown, scraped_at)
                VALUES (%s, {', '.join(['%s'] * len(SNAPSHOT_COLUMNS))}, %s, now())
                ON CONFLICT (artist_id) DO UPDATE SET
                    {', '.join(f'{c} = EXCLUDED.{c}' for c in SNAPSHOT_COLUMNS)},
                    raw_markdown = EXCLUDED.raw_markdown,
                    scraped_at = EXCLUDED.scraped_at
                RETURNING id, artist_id, {', '.join(SNAPSHOT_COLUMNS)}, scraped_at
            """, (artist_id, *row.values(), (raw_markdown or '')[:RAW_MARKDOWN_LIMIT]))
            snapshot = cur.fetchone()
            conn.commit()
            return snapshot
