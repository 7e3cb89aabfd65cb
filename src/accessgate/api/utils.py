"""Shared API utilities."""

from html import escape

from fastapi import HTTPException, status
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from accessgate.config import settings
from accessgate.models import User

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
</head>
<body style="font-family: system-ui, sans-serif; max-width: 32rem; margin: 4rem auto; text-align: center;">
<h1>{title}</h1>
<p>{message}</p>
{extra}
<p><a href="{app_url}">Back to the app</a></p>
</body>
</html>
"""


def render_page(
    title: str,
    message: str,
    *,
    status_code: int = status.HTTP_200_OK,
    extra: str = "",
    error: str | None = None,
) -> HTMLResponse:
    """Render a minimal standalone HTML page for browser-facing endpoints.

    ``extra`` is inserted as-is and must already be escaped.
    """
    headers = {"X-Verification-Error": error} if error else None
    body = PAGE_TEMPLATE.format(
        title=escape(title),
        message=escape(message),
        extra=extra,
        app_url=escape(settings.app_url, quote=True),
    )
    return HTMLResponse(content=body, status_code=status_code, headers=headers)


async def get_user_or_404(user_id: str, session: AsyncSession) -> User:
    """Get a user by ID.

    Raises:
        HTTPException: 404 if user not found
    """
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user
