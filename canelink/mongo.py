# canelink/mongo.py
from __future__ import annotations

from flask_pymongo import PyMongo
from pymongo.errors import PyMongoError

mongo = PyMongo()


def init_mongo(app):
    """
    Initializes Flask-PyMongo from app.config["MONGO_URI"].
    The client connects lazily, so a bad URI surfaces on first query.
    """
    if not app.config.get("MONGO_URI"):
        app.logger.warning("MONGO_URI not set. Mongo will not be initialized.")
        return mongo

    mongo.init_app(app)
    app.logger.info("Mongo initialized")
    return mongo


def ping() -> bool:
    """True when the configured server answers a ping."""
    if mongo.cx is None:
        return False
    try:
        mongo.cx.admin.command("ping")
        return True
    except PyMongoError:
        return False
