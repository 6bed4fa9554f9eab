from flask import Blueprint, jsonify

from ..db import get_store

bp = Blueprint('tags', __name__)


@bp.route('/tags', methods=['GET'])
def get_tags():
    """Get the 100 most used tags"""
    with get_store().session() as repo:
        tags = repo.list_tags(limit=100)

    return jsonify({
        'success': True,
        'tags': [
            {
                'id': tag['id'],
                'name': tag['name'],
                'color': tag['color'],
                'usage_count': tag['usage_count'],
                'description': tag['description']
            }
            for tag in tags
        ]
    }), 200
