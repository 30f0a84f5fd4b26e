"""
Flask application factory.

Creates the ingress/read API and registers all blueprints. The store, job
queue and circuit breakers are injected (tests pass fakes) or built from
config on first start.
"""
from flask import Flask


def create_app(store=None, job_queue=None, breakers=None):
    """Create and configure the Flask application."""
    from leadpipe import config
    from leadpipe.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = config.SECRET_KEY

    if store is None:
        from leadpipe.extensions import make_store
        store, _engine = make_store()
    if job_queue is None or breakers is None:
        from leadpipe.extensions import make_redis, make_job_queue
        from leadpipe.services.circuit_breaker import build_breakers
        connection = make_redis()
        job_queue = job_queue or make_job_queue(connection)
        breakers = breakers if breakers is not None else build_breakers(connection)

    app.extensions['lead_store'] = store
    app.extensions['job_queue'] = job_queue
    app.extensions['breakers'] = breakers

    # Register blueprints
    from leadpipe.routes.leads import bp as leads_bp
    from leadpipe.routes.drafts import bp as drafts_bp
    from leadpipe.routes.monitor import bp as monitor_bp

    app.register_blueprint(leads_bp)
    app.register_blueprint(drafts_bp)
    app.register_blueprint(monitor_bp)

    return app
