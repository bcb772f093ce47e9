# app.py (gunicorn app:app, or flask --app app run)

from flask import Flask
from flask_cors import CORS
from pymongo.errors import PyMongoError

from canelink.app_config import load_config
from canelink.commands import register_commands
from canelink.errors import register_error_handlers
from canelink.indexes import ensure_indexes
from canelink.mongo import init_mongo, mongo
from canelink.register_blueprints import register_all_blueprints
from canelink.security import init_security


def create_app(config=None):
    app = Flask(__name__)

    # -------------------------
    # Config
    # -------------------------
    load_config(app, config)

    CORS(app, resources={r"/*": {"origins": app.config["CORS_ORIGINS"]}})

    # -------------------------
    # Mongo
    # -------------------------
    if app.config["DISABLE_MONGO"]:
        app.logger.warning("Mongo disabled by DISABLE_MONGO=1")
    else:
        init_mongo(app)

    # -------------------------
    # JWT + bcrypt, errors
    # -------------------------
    init_security(app)
    register_error_handlers(app)

    # -------------------------
    # Blueprints + CLI
    # -------------------------
    register_all_blueprints(app)
    register_commands(app)

    if app.config["MONGO_ENSURE_INDEXES"] and not app.config["DISABLE_MONGO"]:
        with app.app_context():
            try:
                ensure_indexes(mongo.db)
            except PyMongoError as e:
                app.logger.warning("Index setup skipped: %s", e)

    return app


app = create_app()


# Local run only
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
