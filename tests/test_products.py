import datetime

import pytest
from bson import ObjectId
from werkzeug.datastructures import MultiDict

from storefront.models import utcnow
from storefront.products import build_product_query, validate_product


@pytest.fixture
def category(make_category):
    return make_category('Shoes')


@pytest.fixture
def make_product(db, category):
    counter = {'n': 0}

    def _make_product(name=None, price=10.0, brand='', stock=20, description='A product', **extra):
        counter['n'] += 1
        created = utcnow() + datetime.timedelta(seconds=counter['n'])
        doc = {
            'name': name or f"Product {counter['n']}",
            'description': description,
            'brand': brand,
            'price': price,
            'category': category['_id'],
            'image': 'data:image/png;base64,AAAA',
            'images': [],
            'stock': stock,
            'createdAt': created,
            'updatedAt': created,
        }
        doc.update(extra)
        doc['_id'] = db.products.insert_one(doc).inserted_id
        return doc
    return _make_product


def test_query_builder_combines_filters():
    category_id = str(ObjectId())
    query = build_product_query(MultiDict({
        'category': category_id, 'brand': 'nik', 'minPrice': '50', 'maxPrice': '100', 'search': 'run',
    }))

    assert query['category'] == ObjectId(category_id)
    assert query['brand'] == {'$regex': 'nik', '$options': 'i'}
    assert query['price'] == {'$gte': 50.0, '$lte': 100.0}
    assert len(query['$or']) == 3


def test_query_builder_escapes_search_text():
    query = build_product_query(MultiDict({'search': 'a+b'}))
    assert query['$or'][0]['name']['$regex'] == r'a\+b'


def test_query_builder_rejects_bad_input():
    with pytest.raises(ValueError):
        build_product_query(MultiDict({'category': 'nope'}))
    with pytest.raises(ValueError):
        build_product_query(MultiDict({'minPrice': 'cheap'}))


def test_validate_product_reports_missing_fields():
    fields, errors = validate_product({'name': 'Runner'})
    assert 'Product description is required' in errors
    assert 'Product price is required' in errors
    assert 'Product category is required' in errors
    assert 'Product image is required' in errors


def test_validate_product_partial_only_checks_given_fields():
    fields, errors = validate_product({'price': -1}, partial=True)
    assert errors == ['Price cannot be negative']
    fields, errors = validate_product({'stock': 3}, partial=True)
    assert errors == [] and fields == {'stock': 3}


@pytest.mark.parametrize('price', [float('nan'), float('inf'), 'NaN', '-Infinity'])
def test_validate_product_rejects_non_finite_price(price):
    fields, errors = validate_product({'price': price}, partial=True)
    assert errors == ['Product price is required']
    assert 'price' not in fields


@pytest.mark.parametrize('stock', [float('inf'), float('nan'), 2 ** 70])
def test_validate_product_rejects_non_finite_stock(stock):
    fields, errors = validate_product({'stock': stock}, partial=True)
    assert errors == ['Product stock must be a whole number']


def test_query_builder_rejects_non_finite_prices():
    with pytest.raises(ValueError):
        build_product_query(MultiDict({'minPrice': 'nan'}))
    with pytest.raises(ValueError):
        build_product_query(MultiDict({'maxPrice': 'inf'}))


def test_listing_paginates_with_total_and_pages(client, make_product):
    for _ in range(25):
        make_product()

    body = client.get('/api/products?page=3&limit=10').get_json()

    assert body['total'] == 25
    assert body['pages'] == 3
    assert body['page'] == 3
    assert body['count'] == 5


def test_listing_price_range_with_pagination(client, make_product):
    for price in (10, 49.99, 50, 60, 75, 99, 100, 100.01, 150):
        make_product(price=price)
    for _ in range(12):
        make_product(price=80)

    body = client.get('/api/products?minPrice=50&maxPrice=100&page=2&limit=12').get_json()

    assert body['total'] == 17
    assert body['pages'] == 2
    assert body['count'] == 5
    assert all(50 <= p['price'] <= 100 for p in body['data'])


def test_listing_is_newest_first_and_hides_images(client, make_product):
    make_product(name='Old')
    make_product(name='New')

    body = client.get('/api/products').get_json()

    assert [p['name'] for p in body['data']] == ['New', 'Old']
    assert body['data'][0]['image'] is None
    assert body['data'][0]['hasBase64Image'] is True
    assert 'images' not in body['data'][0]
    assert body['data'][0]['category']['name'] == 'Shoes'


def test_listing_search_and_brand_filters(client, make_product):
    make_product(name='Trail Runner', brand='Nike')
    make_product(name='Loafer', brand='Clarks', description='Leather, for running errands')
    make_product(name='Sandal', brand='Birkenstock')

    search = client.get('/api/products?search=RUN').get_json()
    brand = client.get('/api/products?brand=nik').get_json()

    assert {p['name'] for p in search['data']} == {'Trail Runner', 'Loafer'}
    assert [p['name'] for p in brand['data']] == ['Trail Runner']


def test_listing_category_filter(client, make_product, make_category, db):
    other = make_category('Bags')
    make_product(name='Tote', category=other['_id'])
    make_product(name='Boot')

    body = client.get(f"/api/products?category={other['_id']}").get_json()

    assert [p['name'] for p in body['data']] == ['Tote']


def test_listing_brands_cover_whole_collection(client, make_product):
    make_product(brand='Nike', price=10)
    make_product(brand='Adidas', price=500)
    make_product(brand='  ')
    make_product(brand='')

    body = client.get('/api/products?maxPrice=20').get_json()

    assert body['total'] == 3
    assert body['brands'] == ['Adidas', 'Nike']


def test_listing_rejects_malformed_filters(client):
    assert client.get('/api/products?category=abc').status_code == 400
    assert client.get('/api/products?minPrice=abc').status_code == 400


def test_get_product_and_image(client, make_product):
    product = make_product(name='Runner')

    detail = client.get(f"/api/products/{product['_id']}").get_json()
    image = client.get(f"/api/products/{product['_id']}/image").get_json()

    assert detail['data']['name'] == 'Runner'
    assert detail['data']['image'] == 'data:image/png;base64,AAAA'
    assert image['data'] == {'image': 'data:image/png;base64,AAAA'}
    assert client.get(f'/api/products/{ObjectId()}').status_code == 404


def test_create_product(client, admin, category):
    _, headers = admin
    payload = {
        'name': ' Runner ', 'description': 'Fast shoe', 'brand': 'Nike', 'price': 89.5,
        'category': str(category['_id']), 'image': 'data:image/png;base64,AAAA', 'stock': 4,
        'sizes': ['42', '43'],
    }

    res = client.post('/api/products', json=payload, headers=headers)

    assert res.status_code == 201
    data = res.get_json()['data']
    assert data['name'] == 'Runner'
    assert data['category'] == str(category['_id'])
    assert data['sizeType'] == 'clothing'


def test_create_product_validation(client, admin, category):
    _, headers = admin
    payload = {'name': 'Runner', 'description': 'x', 'price': -5, 'stock': -1,
               'category': str(category['_id']), 'image': 'img'}

    res = client.post('/api/products', json=payload, headers=headers)

    assert res.status_code == 400
    assert set(res.get_json()['errors']) == {'Price cannot be negative', 'Stock cannot be negative'}


def test_create_product_unknown_category(client, admin):
    _, headers = admin
    payload = {'name': 'Runner', 'description': 'x', 'price': 5,
               'category': str(ObjectId()), 'image': 'img'}

    res = client.post('/api/products', json=payload, headers=headers)

    assert res.status_code == 400
    assert res.get_json()['message'] == 'Category not found'


@pytest.mark.parametrize('price, stock', [('NaN', '4'), ('Infinity', '4'), ('5', 'Infinity')])
def test_create_product_rejects_non_finite_numbers(client, admin, category, db, price, stock):
    _, headers = admin
    body = ('{"name": "Runner", "description": "x", "image": "img", '
            f'"category": "{category["_id"]}", "price": {price}, "stock": {stock}}}')

    res = client.post('/api/products', data=body, content_type='application/json', headers=headers)

    assert res.status_code == 400
    assert res.get_json()['success'] is False
    assert db.products.count_documents({}) == 0


def test_create_product_forbidden_for_customers(client, customer, category):
    _, headers = customer
    assert client.post('/api/products', json={'name': 'x'}, headers=headers).status_code == 403


def test_update_and_delete_product(client, admin, make_product, db):
    _, headers = admin
    product = make_product(name='Runner', stock=5)

    updated = client.put(f"/api/products/{product['_id']}", json={'stock': 2, 'price': 12}, headers=headers)
    assert updated.status_code == 200
    assert updated.get_json()['data']['stock'] == 2
    assert updated.get_json()['data']['category']['name'] == 'Shoes'

    deleted = client.delete(f"/api/products/{product['_id']}", headers=headers)
    assert deleted.status_code == 200
    assert db.products.find_one({'_id': product['_id']}) is None
    assert client.delete(f"/api/products/{product['_id']}", headers=headers).status_code == 404
