import base64
import io
import os

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 32


def _file(content=PNG_BYTES, name='photo.png', mimetype='image/png'):
    return (io.BytesIO(content), name, mimetype)


def test_single_upload_returns_data_uri(client, admin):
    _, headers = admin

    res = client.post('/api/upload', data={'image': _file()}, headers=headers,
                      content_type='multipart/form-data')

    assert res.status_code == 200
    data = res.get_json()['data']
    assert data['originalname'] == 'photo.png'
    assert data['mimetype'] == 'image/png'
    assert data['size'] == len(PNG_BYTES)
    assert data['url'] == 'data:image/png;base64,' + base64.b64encode(PNG_BYTES).decode('ascii')


def test_upload_rejects_non_images(client, admin):
    _, headers = admin

    res = client.post('/api/upload', data={'image': _file(b'hello', 'notes.txt', 'text/plain')},
                      headers=headers, content_type='multipart/form-data')

    assert res.status_code == 400
    assert 'Only image files' in res.get_json()['message']


def test_upload_rejects_oversized_images(app, client, admin):
    _, headers = admin
    app.config['MAX_IMAGE_SIZE'] = 16

    res = client.post('/api/upload', data={'image': _file()}, headers=headers,
                      content_type='multipart/form-data')

    assert res.status_code == 400


def test_upload_without_file(client, admin):
    _, headers = admin
    res = client.post('/api/upload', data={}, headers=headers, content_type='multipart/form-data')

    assert res.status_code == 400
    assert res.get_json()['message'] == 'No file uploaded'


def test_upload_requires_admin(client, customer):
    _, headers = customer
    res = client.post('/api/upload', data={'image': _file()}, headers=headers,
                      content_type='multipart/form-data')
    assert res.status_code == 403


def test_multiple_upload(client, admin):
    _, headers = admin
    files = [_file(name='a.png'), _file(name='b.jpg', mimetype='image/jpeg')]

    res = client.post('/api/upload/multiple', data={'images': files}, headers=headers,
                      content_type='multipart/form-data')

    assert res.status_code == 200
    body = res.get_json()
    assert body['count'] == 2
    assert [f['originalname'] for f in body['data']] == ['a.png', 'b.jpg']


def test_multiple_upload_limits_file_count(app, client, admin):
    _, headers = admin
    app.config['MAX_UPLOAD_FILES'] = 2
    files = [_file(name=f'{i}.png') for i in range(3)]

    res = client.post('/api/upload/multiple', data={'images': files}, headers=headers,
                      content_type='multipart/form-data')

    assert res.status_code == 400


def test_disk_storage_serves_uploaded_file(app, client, admin, tmp_path):
    _, headers = admin
    app.config['UPLOAD_STORAGE'] = 'disk'
    app.config['UPLOAD_FOLDER'] = str(tmp_path)
    app.config['BASE_URL'] = 'https://api.example.com'

    res = client.post('/api/upload', data={'image': _file()}, headers=headers,
                      content_type='multipart/form-data')

    assert res.status_code == 200
    data = res.get_json()['data']
    assert data['url'] == f"https://api.example.com/uploads/{data['filename']}"
    assert os.path.exists(tmp_path / data['filename'])

    served = client.get(f"/uploads/{data['filename']}")
    assert served.status_code == 200
    assert served.data == PNG_BYTES


def test_disk_storage_cleans_up_failed_batch(app, client, admin, tmp_path):
    _, headers = admin
    app.config['UPLOAD_STORAGE'] = 'disk'
    app.config['UPLOAD_FOLDER'] = str(tmp_path)
    files = [_file(name='ok.png'), _file(b'x', 'bad.exe', 'application/octet-stream')]

    res = client.post('/api/upload/multiple', data={'images': files}, headers=headers,
                      content_type='multipart/form-data')

    assert res.status_code == 400
    assert os.listdir(tmp_path) == []
