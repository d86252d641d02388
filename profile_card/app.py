import base64
import logging
from typing import Optional

from flask import Flask, jsonify, make_response, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from . import config
from .compositor import ProfileCardCompositor
from .errors import IMAGE_GENERATION_FAILED, CardError
from .render_request import RenderRequest

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ENDPOINTS = (
    ('GET', '/api/v1/canvas/perfil', 'Render a profile card (PNG, or JSON with json=true)'),
    ('GET', '/api/v1/canvas/profile', 'Alias of /api/v1/canvas/perfil'),
    ('GET', '/api/v1/cache_status', 'Template and image cache statistics'),
    ('GET', '/health', 'Health check'),
)


def create_app(compositor: Optional[ProfileCardCompositor] = None) -> Flask:
    app = Flask(__name__)
    CORS(app,
         origins=["*"],
         methods=["GET", "OPTIONS"],
         max_age=86400,
         supports_credentials=False)

    compositor = compositor or ProfileCardCompositor()
    app.extensions['profile_card'] = compositor

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        """Keep every error response in the JSON envelope, never an HTML page"""
        response = jsonify({
            'success': False,
            'errorID': f"HTTP-{error.code}",
            'error': error.description,
        })
        return response, error.code

    @app.route('/', methods=['GET'])
    def index():
        lines = ["Profile Card API", "Available endpoints:"]
        lines += [f"  {method} {path} - {description}" for method, path, description in ENDPOINTS]
        response = make_response("\n".join(lines) + "\n")
        response.headers['Content-Type'] = 'text/plain; charset=utf-8'
        return response

    @app.route('/api/v1/canvas/perfil', methods=['GET'])
    @app.route('/api/v1/canvas/profile', methods=['GET'])
    def render_profile():
        """
        Render a profile card from query parameters.

        Returns image/png bytes, or a JSON envelope when json=true.
        """
        try:
            card_request = RenderRequest.from_args(request.args)
            result = compositor.render(card_request)
        except CardError as e:
            logger.warning(f"Render rejected with {e.error_id}: {e.message}")
            return jsonify(e.to_dict()), e.status
        except Exception as e:
            logger.error(f"Unexpected failure while rendering card: {e}", exc_info=True)
            error = CardError(IMAGE_GENERATION_FAILED, 500, details=str(e))
            return jsonify(error.to_dict()), error.status

        if card_request.want_json:
            image_data = base64.b64encode(result.png).decode('utf-8')
            return jsonify({
                'success': True,
                'message': 'Profile generated',
                'template': result.template,
                'image': request.url,
                'render': f"data:image/png;base64,{image_data}",
            }), 200

        response = make_response(result.png)
        response.headers['Content-Type'] = 'image/png'
        response.headers['Content-Length'] = str(len(result.png))
        return response, 200

    @app.route('/api/v1/cache_status', methods=['GET'])
    def cache_status():
        return jsonify(compositor.cache.stats()), 200

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint - always returns 200 to indicate server is running"""
        return jsonify({'status': 'healthy', 'message': 'Server is running'}), 200

    return app


app = create_app()


if __name__ == '__main__':
    logger.info("[STARTUP] Starting profile card server...")
    for method, path, description in ENDPOINTS:
        logger.info(f"  {method:4} {path} - {description}")
    logger.info(f"Templates: {config.TEMPLATE_ROOT}")
    logger.info(f"Cache TTL: {config.CACHE_TTL_SECONDS or 'process lifetime'}")
    app.run(debug=False, host=config.HOST, port=config.PORT)
