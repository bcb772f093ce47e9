"""
Centralized Blueprint Registration
All blueprints MUST be registered inside register_all_blueprints(app)
"""


def register_all_blueprints(app):

    # Root + health
    from canelink.routes.root.root_routes import root_bp
    app.register_blueprint(root_bp)

    # Auth
    from canelink.routes.auth.auth_routes import auth_bp
    app.register_blueprint(auth_bp)

    # Marketplace
    from canelink.routes.listings.listing_routes import listing_bp
    from canelink.routes.orders.order_routes import order_bp
    app.register_blueprint(listing_bp)
    app.register_blueprint(order_bp)

    # Role areas
    from canelink.routes.farmer.farmer_routes import farmer_bp
    from canelink.routes.factory.factory_routes import factory_bp
    from canelink.routes.hhm.hhm_routes import hhm_bp
    from canelink.routes.worker.worker_routes import worker_bp
    app.register_blueprint(farmer_bp)
    app.register_blueprint(factory_bp)
    app.register_blueprint(hhm_bp)
    app.register_blueprint(worker_bp)

    # Contracts
    from canelink.routes.contracts.contract_routes import contract_bp
    from canelink.routes.farmer_contracts.farmer_contract_routes import farmer_contract_bp
    app.register_blueprint(contract_bp)
    app.register_blueprint(farmer_contract_bp)

    # Analytics + public
    from canelink.routes.analytics.analytics_routes import analytics_bp
    from canelink.routes.public.public_routes import public_bp
    from canelink.routes.users.user_routes import user_bp
    app.register_blueprint(analytics_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(user_bp)

    app.logger.info("All blueprints registered")
