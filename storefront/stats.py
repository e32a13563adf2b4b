# storefront/stats.py
from concurrent.futures import ThreadPoolExecutor
from flask import Blueprint, jsonify, current_app
from . import get_db
from .models import OrderStatus, serialize_doc
from .decorators import admin_required

stats_bp = Blueprint('stats', __name__)

LATEST_LIMIT = 5


def latest_users(db):
    return list(db.users.find({}, {'password_hash': 0}).sort('createdAt', -1).limit(LATEST_LIMIT))


def latest_orders(db):
    orders = list(db.orders.find({}).sort('createdAt', -1).limit(LATEST_LIMIT))
    user_ids = list({o['user'] for o in orders if o.get('user')})
    users = {u['_id']: u for u in db.users.find({'_id': {'$in': user_ids}}, {'name': 1, 'email': 1})}
    for order in orders:
        order['user'] = users.get(order.get('user'), order.get('user'))
    return orders


def orders_by_status(db):
    return list(db.orders.aggregate([
        {'$group': {'_id': '$status', 'count': {'$sum': 1}}},
        {'$sort': {'_id': 1}},
    ]))


def total_revenue(db):
    result = list(db.orders.aggregate([
        {'$match': {'status': {'$ne': OrderStatus.CANCELLED.value}}},
        {'$group': {'_id': None, 'totalRevenue': {'$sum': '$totalPrice'}}},
    ]))
    return result[0]['totalRevenue'] if result else 0


def low_stock_products(db, threshold):
    return list(db.products.find({'stock': {'$lt': threshold}}, {'name': 1, 'stock': 1, 'image': 1})
                .sort('stock', 1)
                .limit(LATEST_LIMIT))


def collect_dashboard_stats(db, low_stock_threshold):
    """Point-in-time dashboard snapshot; the independent queries run concurrently."""
    jobs = {
        'products': lambda: db.products.count_documents({}),
        'categories': lambda: db.categories.count_documents({'parent': None}),
        'orders': lambda: db.orders.count_documents({}),
        'users': lambda: db.users.count_documents({}),
        'latestUsers': lambda: latest_users(db),
        'latestOrders': lambda: latest_orders(db),
        'ordersByStatus': lambda: orders_by_status(db),
        'revenue': lambda: total_revenue(db),
        'lowStockProducts': lambda: low_stock_products(db, low_stock_threshold),
    }
    with ThreadPoolExecutor(max_workers=4) as executor:
        futures = {key: executor.submit(job) for key, job in jobs.items()}
        results = {key: future.result() for key, future in futures.items()}

    return {
        'counts': {
            'products': results['products'],
            'categories': results['categories'],
            'orders': results['orders'],
            'users': results['users'],
        },
        'revenue': results['revenue'],
        'ordersByStatus': results['ordersByStatus'],
        'latestUsers': results['latestUsers'],
        'latestOrders': results['latestOrders'],
        'lowStockProducts': results['lowStockProducts'],
    }


@stats_bp.route('', methods=['GET'])
@stats_bp.route('/', methods=['GET'])
@admin_required
def get_dashboard_stats():
    try:
        stats = collect_dashboard_stats(get_db(), current_app.config['LOW_STOCK_THRESHOLD'])
        return jsonify({'success': True, 'data': serialize_doc(stats)}), 200
    except Exception as e:
        current_app.logger.error(f"Error building dashboard stats: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500
