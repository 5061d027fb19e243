from fastapi import Header, HTTPException, Request

from services.AppContext import AppContext


def get_app_context(request: Request) -> AppContext:
    """Return the application context built at startup."""
    return request.app.state.context


async def verify_api_key(request: Request, x_api_key: str = Header(...)) -> None:
    """Verify the X-Api-Key header against the configured API key.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_api_key (str): The value of the X-Api-Key header.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    helper_config = get_app_context(request).helper_config
    expected_key = helper_config.get_string_val("API_SERVER_API_KEY")
    if x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def verify_github_signature(request: Request, x_hub_signature_256: str | None = Header(default=None)) -> bytes:
    """Verify the HMAC signature of a push webhook and return the raw body.

    Raises:
        HTTPException: 401 if the signature is missing or invalid.
    """
    body = await request.body()
    content_client = get_app_context(request).content_client
    if not content_client.verify_webhook_signature(body, x_hub_signature_256):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    return body


async def verify_telegram_secret(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(default=None),
) -> None:
    """Verify the secret token Telegram sends with every update, if one is configured.

    Raises:
        HTTPException: 401 if the token does not match.
    """
    transport_client = get_app_context(request).transport_client
    if not transport_client.verify_update_secret(x_telegram_bot_api_secret_token):
        raise HTTPException(status_code=401, detail="Invalid secret token")
