"""
Task Routes

- GET /teams/<id>/tasks - Team task list
- GET /artists/<id>/tasks - Tasks for one artist
- POST /tasks - Create a task
- POST /tasks/<id>/toggle - Complete or reopen a task
- DELETE /tasks/<id> - Delete a task
"""

from flask import Blueprint, jsonify, request
import logging

import label_db
from middleware.auth_middleware import require_auth, require_team_member, check_team_access
from utils.helpers import pick_fields

logger = logging.getLogger(__name__)
tasks_bp = Blueprint('tasks', __name__)


def _load_task(task_id):
    task = label_db.get_task(task_id)
    if not task:
        return None, (jsonify({'error': 'Task not found'}), 404)
    denied = check_team_access(task['team_id'])
    if denied:
        return None, denied
    return task, None


@tasks_bp.route('/teams/<team_id>/tasks', methods=['GET'])
@require_auth
@require_team_member
def list_team_tasks(team_id):
    try:
        return jsonify(label_db.list_tasks(team_id=team_id)), 200
    except Exception as e:
        logger.error(f"Error fetching tasks for team {team_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch tasks'}), 500


@tasks_bp.route('/artists/<artist_id>/tasks', methods=['GET'])
@require_auth
def list_artist_tasks(artist_id):
    try:
        artist = label_db.get_artist(artist_id)
        if not artist:
            return jsonify({'error': 'Artist not found'}), 404
        denied = check_team_access(artist['team_id'])
        if denied:
            return denied
        return jsonify(label_db.list_tasks(artist_id=artist_id)), 200
    except Exception as e:
        logger.error(f"Error fetching tasks for artist {artist_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch tasks'}), 500


@tasks_bp.route('/tasks', methods=['POST'])
@require_auth
def create_task():
    """
    Request body:
        {"team_id", "title", "artist_id"?, "due_date"?, "assigned_to"?, ...}

    Returns:
        201: Task row
        400: Missing title or team_id
    """
    data = request.get_json(silent=True) or {}
    values = pick_fields(data, label_db.TASK_COLUMNS)
    if not values.get('title'):
        return jsonify({'error': 'Task title is required'}), 400
    if not values.get('team_id'):
        return jsonify({'error': 'team_id is required'}), 400

    try:
        denied = check_team_access(values['team_id'])
        if denied:
            return denied
        return jsonify(label_db.create_task(values)), 201
    except Exception as e:
        logger.error(f"Error creating task: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create task'}), 500


@tasks_bp.route('/tasks/<task_id>/toggle', methods=['POST'])
@require_auth
def toggle_task(task_id):
    """
    Complete or reopen a task. Body {"is_completed": bool} sets the state
    explicitly; without it the current state is flipped.
    """
    data = request.get_json(silent=True) or {}
    try:
        task, error = _load_task(task_id)
        if error:
            return error

        completed = data.get('is_completed')
        if completed is None:
            completed = not task.get('is_completed')

        return jsonify(label_db.set_task_completed(task_id, bool(completed))), 200
    except Exception as e:
        logger.error(f"Error toggling task {task_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to update task'}), 500


@tasks_bp.route('/tasks/<task_id>', methods=['DELETE'])
@require_auth
def delete_task(task_id):
    try:
        task, error = _load_task(task_id)
        if error:
            return error
        label_db.delete_task(task_id)
        return jsonify({'message': 'Task deleted'}), 200
    except Exception as e:
        logger.error(f"Error deleting task {task_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to delete task'}), 500
