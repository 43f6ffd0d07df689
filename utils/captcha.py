import requests
from flask import current_app

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


def verify_captcha(token: str, remote_ip: str = None) -> bool:
    """
    One-shot Turnstile token check. Any doubt (missing token, missing secret,
    network error, malformed reply) counts as a failed check.
    """
    if not token:
        return False
    secret = current_app.config.get("TURNSTILE_SECRET_KEY")
    if not secret:
        current_app.logger.error("TURNSTILE_SECRET_KEY not configured")
        return False

    form = {"secret": secret, "response": token}
    if remote_ip:
        form["remoteip"] = remote_ip
    try:
        resp = requests.post(TURNSTILE_VERIFY_URL, data=form, timeout=5)
        result = resp.json()
    except (requests.RequestException, ValueError) as exc:
        current_app.logger.warning("CAPTCHA verification unavailable: %s", exc)
        return False

    if not result.get("success"):
        current_app.logger.info("CAPTCHA rejected: %s", result.get("error-codes"))
        return False
    return True
