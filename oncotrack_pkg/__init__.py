# oncotrack_pkg/__init__.py

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, NotFound

# Load environment variables from .env file.
load_dotenv()

from .config import get_config

# Extensions live at module level and are bound to the app in create_app().
db = SQLAlchemy()
migrate = Migrate()


def create_app(config_name='development'):
    """
    Application factory function.
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    if hasattr(config_class, 'validate'):
        config_class.validate()
    app.config.from_object(config_class)

    db.init_app(app)
    migrate.init_app(app, db)

    # Blueprints are imported here to avoid circular imports with models.
    from .auth.routes import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    from .access.routes import access_bp
    app.register_blueprint(access_bp, url_prefix='/api/access')

    from .treatment.routes import treatment_bp
    app.register_blueprint(treatment_bp, url_prefix='/api')

    from .connections.routes import connections_bp, patient_vaccination_bp
    app.register_blueprint(connections_bp, url_prefix='/api/connections/minha-caderneta')
    app.register_blueprint(patient_vaccination_bp, url_prefix='/api')

    from .audit.listeners import register_audit_listeners
    register_audit_listeners(app)

    @app.route('/health')
    def health_check():
        return jsonify({"status": "healthy", "service": "oncotrack"}), 200

    # Centralized error handling
    from .exceptions import OncoTrackError

    @app.errorhandler(OncoTrackError)
    def handle_domain_error(e):
        if e.status_code >= 500:
            app.logger.error(f"{e.code}: {e.message} {e.details}")
        else:
            app.logger.warning(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        app.logger.error(f"Database Error: {e}")
        db.session.rollback()
        return jsonify({"success": False, "error": "A database error occurred."}), 500

    @app.errorhandler(NotFound)
    def handle_not_found_error(e):
        app.logger.warning(f"Not Found Error: {e}")
        return jsonify({"success": False, "error": "The requested resource was not found."}), 404

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"success": False, "error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_generic_error(e):
        app.logger.error(f"An unexpected error occurred: {e}", exc_info=True)
        return jsonify({"success": False, "error": "An unexpected server error occurred."}), 500

    return app
