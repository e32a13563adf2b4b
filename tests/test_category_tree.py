from bson import ObjectId

from storefront.categories import build_category_tree


def _cat(name, parent=None):
    return {'_id': ObjectId(), 'name': name, 'parent': parent}


def test_children_are_nested_under_their_parent():
    men = _cat('Men')
    women = _cat('Women')
    shirts = _cat('Shirts', men['_id'])
    dresses = _cat('Dresses', women['_id'])

    tree = build_category_tree([shirts, women, dresses, men])

    assert [node['name'] for node in tree] == ['Men', 'Women']
    assert [sub['name'] for sub in tree[0]['subcategories']] == ['Shirts']
    assert [sub['name'] for sub in tree[1]['subcategories']] == ['Dresses']


def test_both_levels_sorted_by_name():
    shoes = _cat('Shoes')
    bags = _cat('Bags')
    children = [_cat(name, shoes['_id']) for name in ('Sneakers', 'Boots', 'Loafers')]

    tree = build_category_tree([shoes, *children, bags])

    assert [node['name'] for node in tree] == ['Bags', 'Shoes']
    assert [sub['name'] for sub in tree[1]['subcategories']] == ['Boots', 'Loafers', 'Sneakers']
    assert tree[0]['subcategories'] == []


def test_orphans_are_dropped():
    shoes = _cat('Shoes')
    orphan = _cat('Lost', ObjectId())

    tree = build_category_tree([shoes, orphan])

    assert len(tree) == 1
    assert tree[0]['subcategories'] == []


def test_grandchildren_are_not_promoted():
    top = _cat('Top')
    mid = _cat('Mid', top['_id'])
    low = _cat('Low', mid['_id'])

    tree = build_category_tree([top, mid, low])

    assert [sub['name'] for sub in tree[0]['subcategories']] == ['Mid']
    assert 'subcategories' not in tree[0]['subcategories'][0]


def test_parent_given_as_string_still_matches():
    top = _cat('Top')
    child = _cat('Child', str(top['_id']))

    tree = build_category_tree([top, child])

    assert tree[0]['subcategories'][0]['name'] == 'Child'


def test_empty_input():
    assert build_category_tree([]) == []
