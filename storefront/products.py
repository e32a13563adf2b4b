# storefront/products.py
import re
from flask import Blueprint, request, jsonify, current_app
from bson import ObjectId
from bson.errors import InvalidId
from . import get_db
from .models import is_number, serialize_doc, parse_pagination, page_count, utcnow
from .decorators import admin_required

products_bp = Blueprint('products', __name__)

DEFAULT_PAGE_SIZE = 12

# Base64 images make these fields huge; listings never load them
LISTING_PROJECTION = {'image': 0, 'images': 0}


def _contains(text):
    """Case-insensitive literal substring match."""
    return {'$regex': re.escape(text), '$options': 'i'}


def _parse_price(raw, label):
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f'Invalid {label} value')
    if not is_number(value):
        raise ValueError(f'Invalid {label} value')
    return value


def build_product_query(args):
    """Translates listing query args into a Mongo filter.

    Raises ValueError with a client-facing message on malformed input.
    """
    query = {}

    category = args.get('category')
    if category:
        if not ObjectId.is_valid(category):
            raise ValueError('Invalid category ID format')
        query['category'] = ObjectId(category)

    brand = args.get('brand')
    if brand:
        query['brand'] = _contains(brand)

    min_price = args.get('minPrice')
    max_price = args.get('maxPrice')
    if min_price or max_price:
        query['price'] = {}
        if min_price:
            query['price']['$gte'] = _parse_price(min_price, 'minPrice')
        if max_price:
            query['price']['$lte'] = _parse_price(max_price, 'maxPrice')

    search = args.get('search')
    if search:
        query['$or'] = [
            {'name': _contains(search)},
            {'description': _contains(search)},
            {'brand': _contains(search)},
        ]

    return query


def _string_list(value):
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_product(data, partial=False):
    """Returns (fields, errors) for a create (or, with partial=True, update) payload."""
    fields = {}
    errors = []

    for field in ('name', 'description', 'image'):
        if field in data or not partial:
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                errors.append(f'Product {field} is required')
            else:
                fields[field] = value.strip() if field == 'name' else value

    if 'brand' in data or not partial:
        brand = data.get('brand') or ''
        if not isinstance(brand, str):
            errors.append('Brand must be a string')
        else:
            fields['brand'] = brand.strip()

    if 'price' in data or not partial:
        price = data.get('price')
        if isinstance(price, str):
            try:
                price = float(price)
            except ValueError:
                price = None
        if not is_number(price):
            errors.append('Product price is required')
        elif price < 0:
            errors.append('Price cannot be negative')
        else:
            fields['price'] = price

    if 'stock' in data or not partial:
        stock = data.get('stock', 0)
        if isinstance(stock, str) and stock.strip().isdecimal():
            stock = int(stock)
        if not is_number(stock) or int(stock) != stock:
            errors.append('Product stock must be a whole number')
        elif stock < 0:
            errors.append('Stock cannot be negative')
        else:
            fields['stock'] = int(stock)

    if 'category' in data or not partial:
        category = data.get('category')
        if isinstance(category, dict):
            category = category.get('_id')
        if not category or not ObjectId.is_valid(category):
            errors.append('Product category is required')
        else:
            fields['category'] = ObjectId(category)

    if 'sizeType' in data or not partial:
        size_type = data.get('sizeType') or 'clothing'
        if not isinstance(size_type, str):
            errors.append('sizeType must be a string')
        else:
            fields['sizeType'] = size_type

    for field in ('images', 'sizes', 'colors'):
        if field in data or not partial:
            value = data.get(field) or []
            if not _string_list(value):
                errors.append(f'{field} must be a list of strings')
            else:
                fields[field] = value

    return fields, errors


def _populate_categories(db, products):
    """Replaces each category id with ``{_id, name}``."""
    category_ids = list({p['category'] for p in products if p.get('category')})
    names = {}
    if category_ids:
        for category in db.categories.find({'_id': {'$in': category_ids}}, {'name': 1}):
            names[category['_id']] = category
    for product in products:
        if product.get('category') in names:
            product['category'] = names[product['category']]
    return products


@products_bp.route('', methods=['GET'])
@products_bp.route('/', methods=['GET'])
def get_products():
    """Filtered, paginated product listing without image payloads."""
    page, limit = parse_pagination(request.args, DEFAULT_PAGE_SIZE)
    try:
        query = build_product_query(request.args)
    except ValueError as ve:
        return jsonify({'success': False, 'message': str(ve)}), 400

    try:
        db = get_db()
        cursor = (db.products.find(query, LISTING_PROJECTION)
                  .sort('createdAt', -1)
                  .skip((page - 1) * limit)
                  .limit(limit))
        products = list(cursor)
        total = db.products.count_documents(query)
        brands = sorted(b.strip() for b in db.products.distinct('brand') if isinstance(b, str) and b.strip())

        _populate_categories(db, products)
        for product in products:
            # Clients fetch the image lazily from /<id>/image
            product['image'] = None
            product['hasBase64Image'] = True

        return jsonify({
            'success': True,
            'count': len(products),
            'total': total,
            'page': page,
            'pages': page_count(total, limit),
            'brands': brands,
            'data': serialize_doc(products),
        }), 200
    except Exception as e:
        current_app.logger.error(f"getProducts error: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@products_bp.route('/<string:product_id>/image', methods=['GET'])
def get_product_image(product_id):
    """Image only, for lazy loading."""
    try:
        product = get_db().products.find_one({'_id': ObjectId(product_id)}, {'image': 1})
        if not product:
            return jsonify({'success': False, 'message': 'Product not found'}), 404
        return jsonify({'success': True, 'data': {'image': product.get('image') or ''}}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Product ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"getProductImage error for {product_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@products_bp.route('/<string:product_id>', methods=['GET'])
def get_product(product_id):
    try:
        db = get_db()
        product = db.products.find_one({'_id': ObjectId(product_id)})
        if not product:
            return jsonify({'success': False, 'message': 'Product not found'}), 404
        _populate_categories(db, [product])
        return jsonify({'success': True, 'data': serialize_doc(product)}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Product ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"getProduct error for {product_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@products_bp.route('', methods=['POST'])
@products_bp.route('/', methods=['POST'])
@admin_required
def create_product():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'success': False, 'message': 'No input data provided'}), 400

    fields, errors = validate_product(data)
    if errors:
        return jsonify({'success': False, 'message': 'Validation failed', 'errors': errors}), 400

    try:
        db = get_db()
        if not db.categories.find_one({'_id': fields['category']}, {'_id': 1}):
            return jsonify({'success': False, 'message': 'Category not found'}), 400

        now = utcnow()
        fields['createdAt'] = now
        fields['updatedAt'] = now
        result = db.products.insert_one(fields)
        fields['_id'] = result.inserted_id

        current_app.logger.info(f"Product '{fields['name']}' created ({result.inserted_id}).")
        return jsonify({'success': True, 'data': serialize_doc(fields)}), 201
    except Exception as e:
        current_app.logger.error(f"Create product error: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@products_bp.route('/<string:product_id>', methods=['PUT'])
@admin_required
def update_product(product_id):
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'success': False, 'message': 'No input data provided'}), 400

    try:
        product_oid = ObjectId(product_id)
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Product ID format'}), 400

    fields, errors = validate_product(data, partial=True)
    if errors:
        return jsonify({'success': False, 'message': 'Validation failed', 'errors': errors}), 400

    try:
        db = get_db()
        if not db.products.find_one({'_id': product_oid}, {'_id': 1}):
            return jsonify({'success': False, 'message': 'Product not found'}), 404
        if 'category' in fields and not db.categories.find_one({'_id': fields['category']}, {'_id': 1}):
            return jsonify({'success': False, 'message': 'Category not found'}), 400

        fields['updatedAt'] = utcnow()
        db.products.update_one({'_id': product_oid}, {'$set': fields})

        product = db.products.find_one({'_id': product_oid})
        _populate_categories(db, [product])
        current_app.logger.info(f"Product {product_id} updated fields: {list(fields.keys())}")
        return jsonify({'success': True, 'data': serialize_doc(product)}), 200
    except Exception as e:
        current_app.logger.error(f"Update product error for {product_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@products_bp.route('/<string:product_id>', methods=['DELETE'])
@admin_required
def delete_product(product_id):
    try:
        result = get_db().products.delete_one({'_id': ObjectId(product_id)})
        if result.deleted_count == 0:
            return jsonify({'success': False, 'message': 'Product not found'}), 404
        current_app.logger.info(f"Product {product_id} deleted.")
        return jsonify({'success': True, 'message': 'Product deleted successfully'}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Product ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Delete product error for {product_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500
