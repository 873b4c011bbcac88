"""
HTTP API for partner onboarding.

Routes
- GET  /                    liveness + credential presence
- POST /api/carrier_groups  create a carrier group
- POST /api/providers       create a provider (payload carries group_id)
- POST /api/onboarding      carrier group then provider in one browser session

Every POST runs in its own browser session; nothing is shared between requests.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable

from flask import Flask, jsonify, request
from loguru import logger
from werkzeug.exceptions import BadRequest, HTTPException

from partner_onboarding.config.settings import (
    PortalTimeouts,
    Settings,
    has_portal_credentials,
    require_portal_credentials,
)
from partner_onboarding.scraping.field_populator import normalize_value
from partner_onboarding.scraping.form_catalog import FormCatalog, load_catalog
from partner_onboarding.scraping.partnerportal_playwright import PlaywrightPortalClient
from partner_onboarding.services.onboarding import OnboardingOutcome, OnboardingService
from partner_onboarding.services.portal_client import (
    OnboardingPortal,
    OnboardingRequest,
    PortalCredentials,
    SubmissionResult,
    SubmissionStatus,
)
from partner_onboarding.utils.errors import ConfigError

PortalBuilder = Callable[[PortalCredentials], OnboardingPortal]

HTTP_STATUS = {
    SubmissionStatus.CREATED: 200,
    SubmissionStatus.VALIDATION_FAILED: 422,
    SubmissionStatus.NOT_FOUND: 404,
    SubmissionStatus.AUTH_FAILED: 500,
    SubmissionStatus.UNEXPECTED_ERROR: 500,
}


def playwright_portal_builder(settings: Settings, catalog: FormCatalog) -> PortalBuilder:
    def build(creds: PortalCredentials) -> OnboardingPortal:
        return PlaywrightPortalClient(
            base_url=settings.portal_url,
            headless=settings.portal_headless,
            executable_path=settings.browser_executable_path,
            storage_state=creds.storage_state,
            locale=settings.portal_locale,
            artifacts_dir=settings.artifacts_path,
            timeouts=PortalTimeouts.from_settings(settings),
            catalog=catalog,
        )

    return build


def failure_body(result: SubmissionResult) -> dict:
    if result.status is SubmissionStatus.VALIDATION_FAILED:
        return {"success": False, "errors": list(result.messages)}
    body = {"success": False, "error": result.error or result.status.value}
    if result.final_url:
        body["url"] = result.final_url
    return body


def provider_body(result: SubmissionResult) -> dict:
    body = {"success": True, "providerId": result.record_id, "providerUrl": result.record_url}
    if result.carrier_code:
        body["carrierCode"] = result.carrier_code
    return body


def create_app(
    settings: Settings | None = None,
    *,
    portal_builder: PortalBuilder | None = None,
    catalog: FormCatalog | None = None,
) -> Flask:
    """
    Application factory.

    `portal_builder` is the seam tests use to swap the Playwright client for
    a fake; by default a new PlaywrightPortalClient is built per request.
    """
    if settings is None:
        from partner_onboarding.config.settings import settings as default_settings

        settings = default_settings

    catalog = catalog or load_catalog(settings.portal_selectors_file)
    builder = portal_builder or playwright_portal_builder(settings, catalog)
    group_field = catalog.provider.field("group_id")

    app = Flask(__name__)
    app.config["ONBOARDING_SETTINGS"] = settings
    app.config["FORM_CATALOG"] = catalog

    def service() -> OnboardingService:
        creds = require_portal_credentials(settings)
        return OnboardingService(portal_factory=lambda: builder(creds), creds=creds)

    def payload() -> OnboardingRequest:
        try:
            return OnboardingRequest.from_json(request.get_json(silent=True))
        except ValueError as e:
            raise BadRequest(str(e)) from e

    def respond(result: SubmissionResult, success: Callable[[SubmissionResult], dict]):
        if result.ok:
            return jsonify(success(result)), 200
        return jsonify(failure_body(result)), HTTP_STATUS[result.status]

    @app.errorhandler(ConfigError)
    def config_error(e: ConfigError):
        logger.warning("Rejected request: {}", e)
        return jsonify({"success": False, "error": str(e)}), 400

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"success": False, "error": e.description}), e.code

    @app.errorhandler(Exception)
    def unhandled(e: Exception):
        logger.exception("Unhandled error")
        return jsonify({"success": False, "error": str(e) or e.__class__.__name__}), 500

    @app.route("/", methods=["GET"])
    def health():
        return jsonify({"status": "API running", "hasCredentials": has_portal_credentials(settings)})

    @app.route("/api/carrier_groups", methods=["POST"])
    def create_carrier_group():
        with logger.contextualize(request_id=uuid.uuid4().hex[:8]):
            svc = service()
            data = payload()
            logger.info("Creating carrier group {!r}", data.get("carrier_group_name"))
            result = svc.create_carrier_group(data)
            return respond(result, lambda r: {"success": True, "groupId": r.record_id})

    @app.route("/api/providers", methods=["POST"])
    def create_provider():
        with logger.contextualize(request_id=uuid.uuid4().hex[:8]):
            svc = service()
            data = payload()
            group_id = normalize_value(data.get(group_field.name, group_field.aliases))
            if group_id is None:
                return jsonify({"success": False, "error": "Missing group_id (create the carrier group first)"}), 400
            logger.info("Creating provider {!r} in group {}", data.get("provider_display_name"), group_id)
            result = svc.create_provider(data, group_id=str(group_id))
            return respond(result, provider_body)

    @app.route("/api/onboarding", methods=["POST"])
    def onboard():
        with logger.contextualize(request_id=uuid.uuid4().hex[:8]):
            svc = service()
            outcome: OnboardingOutcome = svc.onboard(payload())

            failed = outcome.failed_step
            if failed is not None:
                body = failure_body(failed)
                body["step"] = "carrier_group" if failed is outcome.carrier_group else "provider"
                if outcome.carrier_group.ok:
                    body["groupId"] = outcome.carrier_group.record_id
                return jsonify(body), HTTP_STATUS[failed.status]

            body = {"groupId": outcome.carrier_group.record_id, **provider_body(outcome.provider)}
            return jsonify(body), 200

    return app
