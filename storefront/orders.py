# storefront/orders.py
from flask import Blueprint, request, jsonify, current_app, g
from bson import ObjectId
from bson.errors import InvalidId
from . import get_db
from .models import (
    OrderStatus, ORDER_STATUS_STAMPS, can_transition,
    is_number, serialize_doc, parse_pagination, page_count, utcnow,
)
from .decorators import token_required, admin_required

orders_bp = Blueprint('orders', __name__)

DEFAULT_PAGE_SIZE = 10
REQUIRED_ADDRESS_FIELDS = ('address', 'city', 'postalCode', 'country')


def build_line_items(items_data):
    """Validates cart lines and snapshots them as order line items.

    Returns (items, subtotal). Raises ValueError with a client-facing message.
    Prices are taken as submitted; the live product is not re-checked.
    """
    items = []
    subtotal = 0
    for item_data in items_data:
        if not isinstance(item_data, dict):
            raise ValueError('Invalid order item format')
        label = item_data.get('name') or 'Unknown'

        product_id = item_data.get('product')
        if isinstance(product_id, dict):
            product_id = product_id.get('_id')
        if not product_id or not ObjectId.is_valid(product_id):
            raise ValueError(f'Invalid product reference for item: {label}')

        name = item_data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValueError('Every order item needs a name')

        quantity = item_data.get('quantity')
        if not is_number(quantity) or int(quantity) != quantity or quantity < 1:
            raise ValueError(f'Quantity must be at least 1 for item: {label}')

        price = item_data.get('price')
        if not is_number(price) or price < 0:
            raise ValueError(f'Invalid price for item: {label}')

        item = {
            'product': ObjectId(product_id),
            'name': name.strip(),
            'quantity': int(quantity),
            'price': price,
        }
        for option in ('size', 'color'):
            if item_data.get(option):
                item[option] = str(item_data[option])
        items.append(item)
        subtotal += price * int(quantity)
    if not is_number(subtotal):
        raise ValueError('Order total is out of range')
    return items, subtotal


def build_shipping_address(address_data):
    if not isinstance(address_data, dict):
        raise ValueError('Shipping address is required')
    missing = [field for field in REQUIRED_ADDRESS_FIELDS
               if not isinstance(address_data.get(field), str) or not address_data[field].strip()]
    if missing:
        raise ValueError(f"Shipping address is missing: {', '.join(missing)}")
    address = {field: address_data[field].strip() for field in REQUIRED_ADDRESS_FIELDS}
    if address_data.get('phone'):
        address['phone'] = str(address_data['phone'])
    return address


def _charge(data, field):
    value = data.get(field, 0)
    if value is None:
        return 0
    if not is_number(value) or value < 0:
        raise ValueError(f'{field} must be a non-negative number')
    return value


def _populate_users(db, orders):
    """Replaces each order's user id with ``{_id, name, email}``."""
    user_ids = list({o['user'] for o in orders if o.get('user')})
    users = {}
    if user_ids:
        for user in db.users.find({'_id': {'$in': user_ids}}, {'name': 1, 'email': 1}):
            users[user['_id']] = user
    for order in orders:
        # Keep the bare id when the purchaser has since been deleted
        order['user'] = users.get(order.get('user'), order.get('user'))
    return orders


def _populate_products(db, orders):
    """Replaces each line item's product id with ``{_id, name, image, price}``."""
    product_ids = list({item['product'] for o in orders for item in o.get('items', [])
                        if item.get('product')})
    products = {}
    if product_ids:
        for product in db.products.find({'_id': {'$in': product_ids}}, {'name': 1, 'image': 1, 'price': 1}):
            products[product['_id']] = product
    for order in orders:
        for item in order.get('items', []):
            # Deleted products stay as bare ids; the line item keeps its own snapshot
            item['product'] = products.get(item.get('product'), item.get('product'))
    return orders


def _owner_id(order):
    user = order.get('user')
    return user.get('_id') if isinstance(user, dict) else user


@orders_bp.route('', methods=['GET'])
@orders_bp.route('/', methods=['GET'])
@token_required
def get_orders():
    """Admins see every order; customers only their own."""
    user = g.current_user
    page, limit = parse_pagination(request.args, DEFAULT_PAGE_SIZE)
    query = {} if user.is_admin else {'user': user.id}

    try:
        db = get_db()
        orders = list(db.orders.find(query)
                      .sort('createdAt', -1)
                      .skip((page - 1) * limit)
                      .limit(limit))
        total = db.orders.count_documents(query)
        _populate_users(db, orders)
        _populate_products(db, orders)

        return jsonify({
            'success': True,
            'count': len(orders),
            'total': total,
            'page': page,
            'pages': page_count(total, limit),
            'data': serialize_doc(orders),
        }), 200
    except Exception as e:
        current_app.logger.error(f"Error fetching orders for user {user.id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@orders_bp.route('/<string:order_id>', methods=['GET'])
@token_required
def get_order(order_id):
    """Single order, visible to its owner and to admins."""
    user = g.current_user
    try:
        db = get_db()
        order = db.orders.find_one({'_id': ObjectId(order_id)})
        if not order:
            return jsonify({'success': False, 'message': 'Order not found'}), 404

        if _owner_id(order) != user.id and not user.is_admin:
            current_app.logger.warning(f"User {user.id} denied access to order {order_id}")
            return jsonify({'success': False, 'message': 'Not authorized to view this order'}), 403

        _populate_users(db, [order])
        _populate_products(db, [order])
        return jsonify({'success': True, 'data': serialize_doc(order)}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Order ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Error fetching details for order {order_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@orders_bp.route('', methods=['POST'])
@orders_bp.route('/', methods=['POST'])
@token_required
def create_order():
    """Places an order for the authenticated user with status 'pending'."""
    data = request.get_json(silent=True) or {}
    user = g.current_user

    items_data = data.get('items')
    if not items_data or not isinstance(items_data, list):
        return jsonify({'success': False, 'message': 'No order items'}), 400

    try:
        items, subtotal = build_line_items(items_data)
        shipping_address = build_shipping_address(data.get('shippingAddress'))
        tax_price = _charge(data, 'taxPrice')
        shipping_price = _charge(data, 'shippingPrice')
        total_price = round(subtotal + tax_price + shipping_price, 2)
        if not is_number(total_price):
            raise ValueError('Order total is out of range')
    except ValueError as ve:
        return jsonify({'success': False, 'message': str(ve)}), 400

    payment_method = data.get('paymentMethod') or 'card'
    now = utcnow()
    order_doc = {
        'user': user.id,
        'items': items,
        'shippingAddress': shipping_address,
        'paymentMethod': str(payment_method),
        'taxPrice': round(tax_price, 2),
        'shippingPrice': round(shipping_price, 2),
        'totalPrice': total_price,
        'status': OrderStatus.PENDING.value,
        'createdAt': now,
        'updatedAt': now,
    }

    try:
        result = get_db().orders.insert_one(order_doc)
        order_doc['_id'] = result.inserted_id
        current_app.logger.info(
            f"Order {result.inserted_id} placed by user {user.id} (total {order_doc['totalPrice']}).")
        return jsonify({'success': True, 'data': serialize_doc(order_doc)}), 201
    except Exception as e:
        current_app.logger.error(f"Failed to save order: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@orders_bp.route('/<string:order_id>', methods=['PUT'])
@orders_bp.route('/<string:order_id>/status', methods=['PUT'])
@admin_required
def update_order_status(order_id):
    """Moves an order along pending -> paid -> shipped -> delivered (or cancelled)."""
    data = request.get_json(silent=True) or {}
    admin_user_id = g.current_user.id

    raw_status = data.get('status')
    if not isinstance(raw_status, str) or not raw_status:
        return jsonify({'success': False, 'message': 'Missing status field in request body'}), 400
    try:
        new_status = OrderStatus(raw_status.lower())
    except ValueError:
        allowed = ', '.join(status.value for status in OrderStatus)
        return jsonify({'success': False,
                        'message': f'Invalid status value. Allowed statuses are: {allowed}'}), 400

    try:
        order_oid = ObjectId(order_id)
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Order ID format'}), 400

    try:
        db = get_db()
        order = db.orders.find_one({'_id': order_oid})
        if not order:
            return jsonify({'success': False, 'message': 'Order not found'}), 404

        current_status = order.get('status', OrderStatus.PENDING.value)
        if current_status == new_status.value:
            return jsonify({'success': True, 'message': 'Order status was already set to the requested value',
                            'data': serialize_doc(order)}), 200
        if not can_transition(current_status, new_status):
            return jsonify({'success': False,
                            'message': f'Cannot change order status from {current_status} to {new_status.value}'}), 400

        now = utcnow()
        update_fields = {'status': new_status.value, 'updatedAt': now}
        stamp_field = ORDER_STATUS_STAMPS.get(new_status)
        if stamp_field:
            update_fields[stamp_field] = now

        # Guard on the status we validated against so concurrent updates cannot skip a step
        result = db.orders.update_one({'_id': order_oid, 'status': current_status}, {'$set': update_fields})
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'Order status changed concurrently, retry'}), 409

        current_app.logger.info(
            f"Admin {admin_user_id} updated order {order_id} status {current_status} -> {new_status.value}")
        order.update(update_fields)
        return jsonify({'success': True, 'data': serialize_doc(order)}), 200
    except Exception as e:
        current_app.logger.error(f"Error updating status for order {order_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@orders_bp.route('/<string:order_id>', methods=['DELETE'])
@admin_required
def delete_order(order_id):
    try:
        result = get_db().orders.delete_one({'_id': ObjectId(order_id)})
        if result.deleted_count == 0:
            return jsonify({'success': False, 'message': 'Order not found'}), 404
        current_app.logger.info(f"Admin {g.current_user.id} deleted order {order_id}")
        return jsonify({'success': True, 'message': 'Order deleted successfully'}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Order ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Error deleting order {order_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500
