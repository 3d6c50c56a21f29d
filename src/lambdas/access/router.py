"""Access API router.

Endpoint Groups:
- /api/auth/start-trial, /api/auth/start-subscribe - magic-link issuance
- /verify - magic-link redemption (browser redirect)
- /api/billing/status - entitlement status for the UI
- /api/billing/create-checkout-session - upgrade checkout
- /api/billing/portal - Stripe billing portal
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from src.lambdas.access.billing import BillingActions
from src.lambdas.access.config import AccessConfig
from src.lambdas.access.dependencies import (
    get_access_config,
    get_billing_actions,
    get_issuer,
    get_verifier,
)
from src.lambdas.access.issuer import EntryPoint, MagicLinkIssuer
from src.lambdas.access.verifier import (
    MagicLinkVerifier,
    describe_failure,
    error_redirect_reason,
)
from src.lambdas.shared.auth.sessions import set_session_cookie
from src.lambdas.shared.errors.auth_errors import RateLimitedError
from src.lambdas.shared.middleware.rate_limit import (
    get_client_ip,
    get_rate_limit_headers,
)

logger = logging.getLogger(__name__)

VERIFY_PATH = "/verify"

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
verify_router = APIRouter(tags=["auth"])
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


class MagicLinkRequest(BaseModel):
    """Request body for the start-trial / start-subscribe endpoints."""

    email: str | None = None


def _issue(
    issuer: MagicLinkIssuer, body: MagicLinkRequest, entry: EntryPoint, request: Request
) -> JSONResponse:
    result = issuer.issue(body.email, entry, get_client_ip(request.headers))
    return JSONResponse(
        {"ok": True, "message": "Magic link sent.", "email": result.masked_email}
    )


@auth_router.post("/start-trial")
def start_trial(
    body: MagicLinkRequest,
    request: Request,
    issuer: MagicLinkIssuer = Depends(get_issuer),
):
    """Email a magic link from the free-trial entry point."""
    return _issue(issuer, body, "trial", request)


@auth_router.post("/start-subscribe")
def start_subscribe(
    body: MagicLinkRequest,
    request: Request,
    issuer: MagicLinkIssuer = Depends(get_issuer),
):
    """Email a magic link from the subscribe entry point."""
    return _issue(issuer, body, "subscribe", request)


@verify_router.get(VERIFY_PATH)
def verify_magic_link(
    request: Request,
    token: str | None = None,
    config: AccessConfig = Depends(get_access_config),
    verifier: MagicLinkVerifier = Depends(get_verifier),
):
    """Redeem a magic link and redirect.

    Always a redirect to the app (``?magic=ok|error``) or to Stripe
    Checkout, except rate limiting, which is a 429 with Retry-After.
    """
    if not token:
        return RedirectResponse(
            f"{config.canonical_origin}/?magic=error&reason=missing_token",
            status_code=303,
        )

    try:
        outcome = verifier.verify(token, get_client_ip(request.headers))
    except RateLimitedError:
        raise
    except Exception as e:
        reason = error_redirect_reason(e)
        log_extra = {"reason": reason, **describe_failure(e)}
        if reason in ("server", "server_config"):
            logger.error("Magic link verification failed", extra=log_extra)
        else:
            logger.warning("Magic link verification failed", extra=log_extra)
        return RedirectResponse(
            f"{config.canonical_origin}/?magic=error&reason={reason}",
            status_code=303,
        )

    response = RedirectResponse(outcome.redirect_url, status_code=outcome.status_code)
    set_session_cookie(
        response,
        name=config.session_cookie_name,
        value=outcome.session_token,
        secure=config.secure_cookies,
        max_age=config.session_ttl_seconds,
    )
    if outcome.trial_ends_at:
        # UI countdown hint only; never read by the server
        response.set_cookie(
            key=config.trial_hint_cookie_name,
            value=str(outcome.trial_ends_at),
            max_age=config.session_ttl_seconds,
            path="/",
            httponly=False,
            secure=config.secure_cookies,
            samesite="lax",
        )
    return response


@billing_router.get("/status")
def billing_status(
    request: Request,
    config: AccessConfig = Depends(get_access_config),
    actions: BillingActions = Depends(get_billing_actions),
):
    """Entitlement status for the caller's session cookie."""
    decision, rate = actions.status(
        request.cookies.get(config.session_cookie_name),
        get_client_ip(request.headers),
    )
    return JSONResponse(
        {
            "ok": True,
            "canUse": decision.can_use,
            "reason": decision.status_reason(),
            "trialEndsAt": decision.trial_ends_at,
            "cancelAtPeriodEnd": decision.cancel_at_period_end,
            "currentPeriodEnd": decision.current_period_end,
            "activeSubscriptionId": decision.subscription_id,
        },
        headers=get_rate_limit_headers(rate),
    )


@billing_router.post("/create-checkout-session")
def create_checkout_session(
    request: Request,
    config: AccessConfig = Depends(get_access_config),
    actions: BillingActions = Depends(get_billing_actions),
):
    """Stripe Checkout URL to upgrade to the paid plan."""
    result = actions.create_checkout(request.cookies.get(config.session_cookie_name))
    if result.already_subscribed:
        return JSONResponse({"ok": True, "alreadySubscribed": True})
    return JSONResponse({"ok": True, "url": result.url})


@billing_router.post("/portal")
def billing_portal(
    request: Request,
    config: AccessConfig = Depends(get_access_config),
    actions: BillingActions = Depends(get_billing_actions),
):
    """Stripe billing portal URL for the caller's customer."""
    url = actions.create_portal(request.cookies.get(config.session_cookie_name))
    return JSONResponse({"ok": True, "url": url})


def include_routers(app):
    """Include all access routers in the FastAPI app."""
    app.include_router(auth_router)
    app.include_router(verify_router)
    app.include_router(billing_router)
