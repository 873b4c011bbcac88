from __future__ import annotations

from loguru import logger

from partner_onboarding.app.server import create_app
from partner_onboarding.config.settings import has_portal_credentials, settings
from partner_onboarding.utils.logging_setup import configure_logging


def main() -> int:
    """
    What it does:
    - Configures logging and serves the onboarding API.

    Behavior:
    - Threaded server: each request gets its own thread and its own browser session.
    """
    configure_logging(settings.log_level, settings.log_file)

    app = create_app(settings)

    logger.info("Server running on port {} ({} environment)", settings.port, settings.app_env)
    if not has_portal_credentials(settings):
        logger.warning("Portal credentials are not configured; onboarding requests will be rejected")
    if settings.portal_headless:
        logger.info("Browser will run headless")
    else:
        logger.info("Browser window will be visible (PORTAL_HEADLESS=false)")

    app.run(host=settings.host, port=settings.port, threaded=True, debug=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
