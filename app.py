from flask import Flask, request, jsonify, redirect, url_for
import os
from dotenv import load_dotenv

from config import Settings
from core.kiosk import TheaterKiosk
from core.logger import setup_logger

load_dotenv()

STATUS_BY_CODE = {
    'Validation': 400,
    'MissingTheater': 400,
    'OrderNotFound': 404,
    'StockInsufficient': 409,
    'OrderImmutable': 409,
    'CheckoutState': 409,
    'Aborted': 409,
    'ApiError': 422,
    'ServerError': 502,
    'Network': 503,
    'CatalogLoad': 503,
}


def respond(result):
    """Result dict -> JSON response with a matching status code"""
    if result.get('success', True):
        return jsonify(result)
    return jsonify(result), STATUS_BY_CODE.get(result.get('code'), 500)


def create_app(settings=None, kiosk_factory=None):
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    kiosk = (kiosk_factory or TheaterKiosk)(settings)
    app.extensions['theater_kiosk'] = kiosk

    @app.route('/')
    def index():
        """Landing page - pick a theater"""
        return jsonify({
            'message': 'Theater kiosk is running. Open /kiosk/<theater_id>/menu to start ordering.',
        })

    @app.route('/kiosk/')
    def kiosk_without_theater():
        # no theater id: back to the landing page
        return redirect(url_for('index'))

    @app.route('/kiosk/<theater_id>/menu')
    def menu(theater_id):
        """Menu for a sidebar tab, optionally narrowed to a category"""
        force = request.args.get('refresh', 'false').lower() == 'true'
        return respond(kiosk.get_menu(
            theater_id,
            tab_id=request.args.get('tab', 'all'),
            category_id=request.args.get('category'),
            force_refresh=force,
        ))

    @app.route('/kiosk/<theater_id>/cart')
    def cart(theater_id):
        return respond(kiosk.get_cart_details(theater_id))

    @app.route('/kiosk/<theater_id>/cart/items', methods=['POST'])
    def add_cart_item(theater_id):
        data = request.get_json(silent=True) or {}
        item_id = str(data.get('item_id', '')).strip()
        if not item_id:
            return jsonify({'success': False, 'code': 'Validation', 'error': 'item_id is required'}), 400
        return respond(kiosk.add_to_cart(theater_id, item_id))

    @app.route('/kiosk/<theater_id>/cart/items/<item_id>', methods=['PUT'])
    def update_cart_item(theater_id, item_id):
        data = request.get_json(silent=True) or {}
        try:
            count = int(data.get('count'))
        except (TypeError, ValueError):
            return jsonify({'success': False, 'code': 'Validation', 'error': 'count must be a number'}), 400
        return respond(kiosk.update_cart_item(theater_id, item_id, count))

    @app.route('/kiosk/<theater_id>/cart/items/<item_id>', methods=['DELETE'])
    def remove_cart_item(theater_id, item_id):
        return respond(kiosk.remove_from_cart(theater_id, item_id))

    @app.route('/kiosk/<theater_id>/cart', methods=['DELETE'])
    def clear_cart(theater_id):
        return respond(kiosk.clear_cart(theater_id))

    @app.route('/kiosk/<theater_id>/checkout/review', methods=['POST'])
    def review(theater_id):
        return respond(kiosk.proceed_to_payment(theater_id))

    @app.route('/kiosk/<theater_id>/checkout/pay', methods=['POST'])
    def pay(theater_id):
        data = request.get_json(silent=True) or {}
        return respond(kiosk.pay(
            theater_id,
            customer_name=data.get('customer_name', ''),
            payment_method=data.get('payment_method', 'card'),
            notes=data.get('notes', ''),
        ))

    @app.route('/kiosk/<theater_id>/checkout/cancel', methods=['POST'])
    def cancel_checkout(theater_id):
        return respond(kiosk.cancel_checkout(theater_id))

    @app.route('/kiosk/<theater_id>/checkout/close', methods=['POST'])
    def close_checkout(theater_id):
        return respond(kiosk.close_checkout(theater_id))

    @app.route('/theater/<theater_id>/orders/<key>/items/<line_id>', methods=['DELETE'])
    def cancel_order_line(theater_id, key, line_id):
        return respond(kiosk.cancel_order_line(theater_id, key, line_id))

    @app.route('/theater/<theater_id>/orders/<key>/cancel', methods=['POST'])
    def cancel_order(theater_id, key):
        return respond(kiosk.cancel_order(theater_id, key))

    @app.route('/theater/<theater_id>/orders/<key>')
    def find_order(theater_id, key):
        force = request.args.get('refresh', 'false').lower() == 'true'
        return respond(kiosk.find_order(theater_id, key, force_refresh=force))

    @app.route('/health')
    def health():
        """Health check endpoint"""
        return jsonify({'status': 'ok', 'message': 'Theater kiosk is running!'})

    return app


if __name__ == '__main__':
    settings = Settings.from_env()
    setup_logger(settings)
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('DEBUG', 'False').lower() == 'true'

    print("=== Theater Kiosk Server ===")
    print(f"Starting server on http://localhost:{port}")
    print("Press Ctrl+C to stop")

    create_app(settings).run(
        host='0.0.0.0',
        port=port,
        debug=debug
    )
