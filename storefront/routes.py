from flask import Blueprint, jsonify
from .models import utcnow

main_bp = Blueprint('main', __name__)

@main_bp.route('/health')
def health():
    """Simple health check route."""
    return jsonify({
        'success': True,
        'message': 'Storefront API is running',
        'timestamp': utcnow().isoformat()
    })
