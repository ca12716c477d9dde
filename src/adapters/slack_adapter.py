"""Slack workspace adapter for direct messages.

Uses Slack Web API to resolve users by email and send them direct
messages (nudges, decision notices, briefs).
"""

import asyncio

import structlog
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from src.config import settings

logger = structlog.get_logger()


class SlackAdapter:
    """Adapter for Slack direct messaging.

    Blocking Web API calls run in a worker thread so queue workers
    sharing the event loop are not stalled.
    """

    def __init__(self, bot_token: str | None = None):
        """Initialize with bot token.

        Args:
            bot_token: Slack bot token (xoxb-...).
                      Falls back to the SLACK_BOT_TOKEN setting.
        """
        self._token = bot_token or settings.slack_bot_token
        self._client: WebClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._token)

    def _get_client(self) -> WebClient:
        """Get or create Slack client."""
        if self._client is None:
            if not self._token:
                raise ValueError(
                    "No Slack token. Set SLACK_BOT_TOKEN env var "
                    "or pass bot_token to constructor."
                )
            self._client = WebClient(token=self._token)
        return self._client

    async def lookup_user_by_email(self, email: str) -> dict | None:
        """Look up Slack user by email address.

        Args:
            email: Email address to look up

        Returns:
            User dict with 'id', 'name', 'profile' or None if not found

        Raises:
            SlackApiError: For API failures other than an unknown user
        """
        client = self._get_client()
        try:
            result = await asyncio.to_thread(client.users_lookupByEmail, email=email)
        except SlackApiError as e:
            if e.response.get("error") == "users_not_found":
                return None
            logger.warning(
                "Slack API error looking up user",
                email=email,
                error=str(e),
            )
            raise
        return result.get("user")

    async def send_dm(
        self,
        user_id: str,
        message: str,
        blocks: list[dict] | None = None,
    ) -> dict:
        """Send direct message to a Slack user.

        Args:
            user_id: Slack user ID (not email)
            message: Message text (supports mrkdwn formatting)
            blocks: Optional Block Kit blocks; ``message`` becomes the fallback

        Returns:
            Dict with 'success' and 'ts' (timestamp) or 'error'
        """
        try:
            client = self._get_client()
            kwargs = {"channel": user_id, "text": message}
            if blocks:
                kwargs["blocks"] = blocks
            response = await asyncio.to_thread(client.chat_postMessage, **kwargs)
            return {"success": True, "ts": response["ts"]}
        except SlackApiError as e:
            error = e.response.get("error", "unknown_error")
            logger.warning(
                "Failed to send Slack DM",
                user_id=user_id,
                error=error,
            )
            return {"success": False, "error": error}
