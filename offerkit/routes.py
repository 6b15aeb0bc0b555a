"""
Flask routes for Offer Kit
JSON API for product lookup, mockup generation and offer downloads
"""

import asyncio
import io
import json

from flask import Blueprint, current_app, jsonify, request, send_file
from loguru import logger
from pydantic import ValidationError as SchemaError
from werkzeug.utils import secure_filename

from . import __version__
from .document import OfferRequest
from .errors import (
    EncodeError, LoadError, NotFoundError, OfferKitError, PersistError, ValidationError,
    create_error_recovery_suggestions
)
from .models import ProductRecord
from .storage import LocalBlobStore, MemoryBlobStore
from .views import apply_variant, resolve, variant_base_url


bp = Blueprint('main', __name__)

STATUS_CODES = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (LoadError, 502),
    (EncodeError, 500),
    (PersistError, 500),
]


def services():
    return current_app.extensions['offerkit']


def status_for(error: OfferKitError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


@bp.app_errorhandler(OfferKitError)
def handle_offerkit_error(e):
    status = status_for(e)
    if status >= 500:
        logger.error(f"{type(e).__name__} on {request.path}: {e}")
    else:
        logger.warning(f"{type(e).__name__} on {request.path}: {e}")

    body = e.to_dict()
    body['suggestions'] = create_error_recovery_suggestions(e)
    return jsonify(body), status


def schema_error(e: SchemaError) -> ValidationError:
    problems = [
        {'field': '.'.join(str(part) for part in err['loc']), 'message': err['msg']}
        for err in e.errors()
    ]
    return ValidationError("Request body is invalid", details={'errors': problems})


@bp.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'version': __version__})


@bp.route('/api/products/<article_number>', methods=['GET'])
def get_product(article_number):
    """Look up one product by article number"""
    product = asyncio.run(services().catalog.fetch_product(article_number))
    return jsonify(product.model_dump())


@bp.route('/api/products/<article_number>/views', methods=['GET'])
def get_product_views(article_number):
    """Angle image URLs for a product photo, optionally for one colour variant"""
    base_url = request.args.get('base_url', '').strip()
    color = request.args.get('color', '').strip() or None
    color_code = request.args.get('color_code', '').strip() or None
    folder_id = request.args.get('folder_id', '').strip() or None

    if not base_url or color:
        product = asyncio.run(services().catalog.fetch_product(article_number))
        base_url = variant_base_url(product, color, color_code, folder_id, base_url=base_url)
    elif color_code or folder_id:
        base_url = apply_variant(base_url, color_code, folder_id)

    views_arg = request.args.get('views')
    views = [v for v in views_arg.split(',') if v.strip()] if views_arg else None

    return jsonify(resolve(base_url, views).to_dict())


def _product_from_form(form) -> ProductRecord:
    raw = form.get('product')
    try:
        if raw:
            return ProductRecord.model_validate(json.loads(raw))

        product_id = form.get('product_id', '').strip()
        if not product_id:
            raise ValidationError("product or product_id is required",
                                  suggestions=["Look up the product before uploading a logo"])
        return ProductRecord(
            id=product_id,
            name=form.get('name', product_id),
            image_url=form.get('image_url') or None,
        )
    except json.JSONDecodeError as e:
        raise ValidationError(f"product is not valid JSON: {e}")
    except SchemaError as e:
        raise schema_error(e)


@bp.route('/api/mockups', methods=['POST'])
def create_mockup():
    """Store an uploaded logo and composite it onto the product photo"""
    if 'logo' not in request.files or request.files['logo'].filename == '':
        raise ValidationError("No logo file uploaded", suggestions=["Choose a PNG or JPG logo to upload"])

    logo = request.files['logo']
    product = _product_from_form(request.form)
    data = logo.read()
    knockout = request.form.get('knockout_white', '').lower() in ('1', 'true', 'yes', 'on')

    result = asyncio.run(services().mockups.process_upload(
        product,
        secure_filename(logo.filename),
        logo.mimetype,
        data,
        placement=request.form.get('placement'),
        policy=request.form.get('policy'),
        knockout=knockout,
    ))
    return jsonify(result.to_dict()), 201


@bp.route('/api/offers', methods=['POST'])
def create_offer():
    """Generate an offer PDF and send it as a download"""
    body = request.get_json(silent=True)
    if body is None:
        raise ValidationError("Expected a JSON request body")

    try:
        offer_request = OfferRequest.model_validate(body)
    except SchemaError as e:
        raise schema_error(e)

    document = asyncio.run(services().documents.generate(offer_request))

    response = send_file(
        io.BytesIO(document.pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=document.filename,
    )
    response.headers['X-Quote-Number'] = document.quote_number
    response.headers['X-Page-Count'] = str(document.page_count)
    if document.archived_url:
        response.headers['X-Archived-Url'] = document.archived_url
    return response


@bp.route('/storage/<bucket>/<path:path>', methods=['GET'])
def serve_storage(bucket, path):
    """Serve objects written by the blob store"""
    store = services().store
    if isinstance(store, LocalBlobStore):
        return send_file(store.resolve_path(bucket, path))
    if isinstance(store, MemoryBlobStore):
        content_type = store.objects.get((bucket, path), (b'', None))[1]
        return send_file(io.BytesIO(store.get(bucket, path)), mimetype=content_type or 'application/octet-stream',
                         download_name=path)
    raise NotFoundError(f"No stored object {bucket}/{path}")
