"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in buildroom/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from buildroom.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
INTAKE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Board / checklist / catalog routes: 60/minute
        - Order intake (commerce webhook bursts): 120/minute
        - Metrics: 200/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("systems", "checklists", "catalog"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("orders")
    if bp:
        limiter.limit(INTAKE_LIMIT)(bp)

    bp = app.blueprints.get("metrics")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write=%s intake=%s read=%s",
                    WRITE_LIMIT, INTAKE_LIMIT, READ_LIMIT)
