# storefront/categories.py
from flask import Blueprint, request, jsonify, current_app
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError
from . import get_db
from .models import serialize_doc, utcnow
from .decorators import admin_required

categories_bp = Blueprint('categories', __name__)

CATEGORY_EXISTS = 'Category already exists'
SUBCATEGORY_EXISTS = 'Subcategory with this name already exists under this category'


def _name_key(category):
    return category.get('name') or ''


def build_category_tree(categories):
    """Nests subcategories under their top-level parents.

    Categories without a parent form the top level; every other category is
    attached to the top-level category its ``parent`` points at. Children whose
    parent is not a top-level category are dropped. Both levels are ordered by
    name.
    """
    main_categories = sorted((c for c in categories if not c.get('parent')), key=_name_key)
    sub_categories = sorted((c for c in categories if c.get('parent')), key=_name_key)

    tree = []
    for main in main_categories:
        main_id = str(main['_id'])
        node = {key: value for key, value in main.items() if key != 'parent'}
        node['subcategories'] = [
            dict(sub) for sub in sub_categories if str(sub['parent']) == main_id
        ]
        tree.append(node)
    return tree


def _populate_parents(db, categories):
    """Replaces each parent id with ``{_id, name}`` of the parent category."""
    parent_ids = list({c['parent'] for c in categories if c.get('parent')})
    parents = {}
    if parent_ids:
        for parent in db.categories.find({'_id': {'$in': parent_ids}}, {'name': 1}):
            parents[parent['_id']] = parent
    for category in categories:
        if category.get('parent'):
            category['parent'] = parents.get(category['parent'], category['parent'])
    return categories


def _is_descendant(db, candidate_id, ancestor_id):
    """True if ``candidate_id`` sits somewhere below ``ancestor_id``."""
    seen = set()
    current = candidate_id
    while current and current not in seen:
        if current == ancestor_id:
            return True
        seen.add(current)
        doc = db.categories.find_one({'_id': current}, {'parent': 1})
        current = doc.get('parent') if doc else None
    return False


@categories_bp.route('', methods=['GET'])
@categories_bp.route('/', methods=['GET'])
def get_categories():
    """Nested category tree, or a flat list with ``?flat=true``."""
    flat = request.args.get('flat') == 'true'
    try:
        db = get_db()
        all_categories = list(db.categories.find({}).sort('name', 1))

        if flat:
            _populate_parents(db, all_categories)
            return jsonify({'success': True, 'count': len(all_categories),
                            'data': serialize_doc(all_categories)}), 200

        nested = build_category_tree(all_categories)
        return jsonify({'success': True, 'count': len(all_categories),
                        'data': serialize_doc(nested)}), 200
    except Exception as e:
        current_app.logger.error(f"Error fetching categories: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@categories_bp.route('/main', methods=['GET'])
def get_main_categories():
    try:
        categories = list(get_db().categories.find({'parent': None}).sort('name', 1))
        return jsonify({'success': True, 'count': len(categories), 'data': serialize_doc(categories)}), 200
    except Exception as e:
        current_app.logger.error(f"Error fetching main categories: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@categories_bp.route('/<string:category_id>', methods=['GET'])
def get_category(category_id):
    """Single category with its parent name and direct subcategories."""
    try:
        db = get_db()
        category = db.categories.find_one({'_id': ObjectId(category_id)})
        if not category:
            return jsonify({'success': False, 'message': 'Category not found'}), 404

        _populate_parents(db, [category])
        category['subcategories'] = list(db.categories.find({'parent': category['_id']}).sort('name', 1))
        return jsonify({'success': True, 'data': serialize_doc(category)}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Category ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Error fetching category {category_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@categories_bp.route('/<string:category_id>/subcategories', methods=['GET'])
def get_subcategories(category_id):
    try:
        subcategories = list(get_db().categories.find({'parent': ObjectId(category_id)}).sort('name', 1))
        return jsonify({'success': True, 'count': len(subcategories), 'data': serialize_doc(subcategories)}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Category ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Error fetching subcategories of {category_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@categories_bp.route('', methods=['POST'])
@categories_bp.route('/', methods=['POST'])
@admin_required
def create_category():
    data = request.get_json(silent=True) or {}
    name = data.get('name')
    parent = data.get('parent') or None

    if not isinstance(name, str) or not name.strip():
        return jsonify({'success': False, 'message': 'Category name is required'}), 400
    name = name.strip()

    if parent is not None:
        if not ObjectId.is_valid(parent):
            return jsonify({'success': False, 'message': 'Invalid parent category ID'}), 400
        parent = ObjectId(parent)

    conflict_message = SUBCATEGORY_EXISTS if parent else CATEGORY_EXISTS

    try:
        db = get_db()
        if db.categories.find_one({'name': name, 'parent': parent}):
            return jsonify({'success': False, 'message': conflict_message}), 400

        parent_doc = None
        if parent is not None:
            parent_doc = db.categories.find_one({'_id': parent}, {'name': 1})
            if not parent_doc:
                return jsonify({'success': False, 'message': 'Parent category not found'}), 400

        now = utcnow()
        category = {
            'name': name,
            'description': data.get('description'),
            'image': data.get('image'),
            'parent': parent,
            'createdAt': now,
            'updatedAt': now,
        }
        result = db.categories.insert_one(category)
        category['_id'] = result.inserted_id
        if parent_doc:
            category['parent'] = parent_doc

        current_app.logger.info(f"Category '{name}' created ({result.inserted_id}).")
        return jsonify({'success': True, 'data': serialize_doc(category)}), 201
    except DuplicateKeyError:
        # Lost a race against a concurrent create
        return jsonify({'success': False, 'message': conflict_message}), 400
    except Exception as e:
        current_app.logger.error(f"Error creating category: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@categories_bp.route('/<string:category_id>', methods=['PUT'])
@admin_required
def update_category(category_id):
    data = request.get_json(silent=True) or {}

    try:
        category_oid = ObjectId(category_id)
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Category ID format'}), 400

    try:
        db = get_db()
        category = db.categories.find_one({'_id': category_oid})
        if not category:
            return jsonify({'success': False, 'message': 'Category not found'}), 404

        update_fields = {}
        if 'name' in data:
            name = data['name']
            if not isinstance(name, str) or not name.strip():
                return jsonify({'success': False, 'message': 'Category name cannot be empty'}), 400
            update_fields['name'] = name.strip()
        for field in ('description', 'image'):
            if field in data:
                update_fields[field] = data[field]

        if 'parent' in data:
            parent = data.get('parent') or None
            if parent is not None:
                if parent == category_id:
                    return jsonify({'success': False, 'message': 'Category cannot be its own parent'}), 400
                if not ObjectId.is_valid(parent):
                    return jsonify({'success': False, 'message': 'Invalid parent category ID'}), 400
                parent = ObjectId(parent)
                if not db.categories.find_one({'_id': parent}, {'_id': 1}):
                    return jsonify({'success': False, 'message': 'Parent category not found'}), 400
                if _is_descendant(db, parent, category_oid):
                    return jsonify({'success': False,
                                    'message': 'Category cannot be moved under its own subcategory'}), 400
            update_fields['parent'] = parent

        new_name = update_fields.get('name', category['name'])
        new_parent = update_fields.get('parent', category.get('parent'))
        clash = db.categories.find_one({'name': new_name, 'parent': new_parent, '_id': {'$ne': category_oid}})
        if clash:
            return jsonify({'success': False,
                            'message': SUBCATEGORY_EXISTS if new_parent else CATEGORY_EXISTS}), 400

        update_fields['updatedAt'] = utcnow()
        db.categories.update_one({'_id': category_oid}, {'$set': update_fields})

        updated = db.categories.find_one({'_id': category_oid})
        _populate_parents(db, [updated])
        current_app.logger.info(f"Category {category_id} updated fields: {list(update_fields.keys())}")
        return jsonify({'success': True, 'data': serialize_doc(updated)}), 200
    except DuplicateKeyError:
        # Lost a race against a concurrent rename or move
        return jsonify({'success': False,
                        'message': SUBCATEGORY_EXISTS if new_parent else CATEGORY_EXISTS}), 400
    except Exception as e:
        current_app.logger.error(f"Error updating category {category_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@categories_bp.route('/<string:category_id>', methods=['DELETE'])
@admin_required
def delete_category(category_id):
    """Deletes a childless category."""
    try:
        db = get_db()
        category_oid = ObjectId(category_id)
        category = db.categories.find_one({'_id': category_oid}, {'name': 1})
        if not category:
            return jsonify({'success': False, 'message': 'Category not found'}), 404

        if db.categories.find_one({'parent': category_oid}, {'_id': 1}):
            return jsonify({
                'success': False,
                'message': 'Cannot delete category with subcategories. Delete subcategories first.'
            }), 400

        db.categories.delete_one({'_id': category_oid})
        current_app.logger.info(f"Category {category.get('name')} ({category_id}) deleted.")
        return jsonify({'success': True, 'message': 'Category deleted successfully'}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid Category ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Error deleting category {category_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500
