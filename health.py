from datetime import datetime

from flask import Blueprint, jsonify

from database import ping

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health_check():
    """Health check endpoint for the hosting platform and uptime monitors"""
    database_ok = ping()
    return jsonify({
        'status': 'ok' if database_ok else 'degraded',
        'service': 'campusflow-backend',
        'database': 'ok' if database_ok else 'unreachable',
        'timestamp': datetime.utcnow().isoformat() + 'Z',
    }), 200 if database_ok else 503
