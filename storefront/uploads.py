# storefront/uploads.py
import base64
import os
from uuid import uuid4
from urllib.parse import urljoin
from flask import Blueprint, request, jsonify, current_app
from werkzeug.utils import secure_filename
from .decorators import admin_required

uploads_bp = Blueprint('uploads', __name__)


class UploadError(ValueError):
    """An uploaded file was rejected; the message is safe to show clients."""


def allowed_image(filename, mimetype):
    extension = os.path.splitext(filename)[1].lower().lstrip('.')
    allowed = current_app.config['ALLOWED_IMAGE_EXTENSIONS']
    if not extension or extension not in allowed:
        return False
    if not mimetype or not mimetype.startswith('image/'):
        return False
    return mimetype.split('/', 1)[1].lower() in allowed


def _build_upload_url(filename):
    base_url = current_app.config.get('BASE_URL') or request.host_url
    return urljoin(base_url.rstrip('/') + '/', f"uploads/{filename}")


def store_image(file_storage, field_name):
    """Validates one uploaded image and stores it according to UPLOAD_STORAGE.

    Returns the file description sent back to the client.
    """
    original_name = file_storage.filename or ''
    safe_name = secure_filename(original_name)
    if not safe_name:
        raise UploadError('Please choose a valid file name.')

    mimetype = file_storage.mimetype
    if not allowed_image(safe_name, mimetype):
        raise UploadError('Only image files are allowed (jpeg, jpg, png, gif, webp)')

    content = file_storage.read()
    if len(content) > current_app.config['MAX_IMAGE_SIZE']:
        max_mb = current_app.config['MAX_IMAGE_SIZE'] // (1024 * 1024)
        raise UploadError(f'File {original_name} exceeds the {max_mb}MB limit')

    extension = os.path.splitext(safe_name)[1].lower()
    filename = f"{field_name}-{uuid4().hex}{extension}"

    if current_app.config['UPLOAD_STORAGE'] == 'disk':
        upload_folder = current_app.config['UPLOAD_FOLDER']
        os.makedirs(upload_folder, exist_ok=True)
        with open(os.path.join(upload_folder, filename), 'wb') as fh:
            fh.write(content)
        url = _build_upload_url(filename)
    else:
        url = f"data:{mimetype};base64,{base64.b64encode(content).decode('ascii')}"

    return {
        'filename': filename,
        'originalname': original_name,
        'mimetype': mimetype,
        'size': len(content),
        'url': url,
    }


@uploads_bp.route('', methods=['POST'])
@uploads_bp.route('/', methods=['POST'])
@admin_required
def upload_image():
    file_storage = request.files.get('image')
    if not file_storage or not file_storage.filename:
        return jsonify({'success': False, 'message': 'No file uploaded'}), 400

    try:
        stored = store_image(file_storage, 'image')
        current_app.logger.info(f"Image {stored['originalname']} uploaded as {stored['filename']}")
        return jsonify({'success': True, 'data': stored}), 200
    except UploadError as ue:
        return jsonify({'success': False, 'message': str(ue)}), 400
    except Exception as e:
        current_app.logger.error(f"Image upload failed: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@uploads_bp.route('/multiple', methods=['POST'])
@admin_required
def upload_multiple_images():
    files = [f for f in request.files.getlist('images') if f and f.filename]
    if not files:
        return jsonify({'success': False, 'message': 'No files uploaded'}), 400

    max_files = current_app.config['MAX_UPLOAD_FILES']
    if len(files) > max_files:
        return jsonify({'success': False, 'message': f'At most {max_files} files can be uploaded at once'}), 400

    stored_files = []
    try:
        for file_storage in files:
            stored_files.append(store_image(file_storage, 'images'))
    except UploadError as ue:
        _discard(stored_files)
        return jsonify({'success': False, 'message': str(ue)}), 400
    except Exception as e:
        _discard(stored_files)
        current_app.logger.error(f"Multiple image upload failed: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500

    current_app.logger.info(f"{len(stored_files)} images uploaded")
    return jsonify({'success': True, 'count': len(stored_files), 'data': stored_files}), 200


def _discard(stored_files):
    """Removes files already written to disk when a batch upload fails midway."""
    if current_app.config['UPLOAD_STORAGE'] != 'disk':
        return
    for stored in stored_files:
        try:
            os.remove(os.path.join(current_app.config['UPLOAD_FOLDER'], stored['filename']))
        except OSError as e:
            current_app.logger.warning(f"Could not remove partial upload {stored['filename']}: {e}")
