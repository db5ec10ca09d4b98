"""Push-notification client (Firebase Cloud Messaging HTTP v1 API)."""

import requests

from common.logger import get_logger

from ..credentials import TokenManager
from .base import AuthError, ChannelError, RemoteClient

logger = get_logger(__name__)


class PushClient(RemoteClient):
    """Send data messages to a topic the downstream device subscribes to.

    A 401 response means the cached bearer token is no longer accepted; the
    token manager's cache is dropped immediately so the next send acquires a
    fresh token.

    API Documentation: https://firebase.google.com/docs/reference/fcm/rest/v1/projects.messages/send
    """

    channel = "push"
    SEND_URL = "https://fcm.googleapis.com/v1/projects/{}/messages:send"

    def __init__(
        self,
        project_id: str,
        tokens: TokenManager,
        topic: str = "kds_push",
        session: requests.Session | None = None,
    ):
        """Initialize push client.

        Args:
            project_id: Messaging project id
            tokens: Token manager providing bearer tokens
            topic: Topic name the message is addressed to
        """
        super().__init__(session=session)
        self.project_id = project_id
        self.tokens = tokens
        self.topic = topic

    @property
    def send_url(self) -> str:
        return self.SEND_URL.format(self.project_id)

    def build_message(self, count: int, completed: int, time: str) -> dict:
        """Build the send payload. Data values must be strings."""
        return {
            "message": {
                "topic": self.topic,
                "data": {
                    "count": str(count),
                    "completed": str(completed),
                    "time": time,
                    "source": "fcm",
                },
                # High priority so the message is delivered in Doze mode
                "android": {"priority": "high"},
            }
        }

    def send(self, count: int, completed: int, time: str) -> None:
        """Send one data message.

        Raises:
            AuthError: If no token can be obtained or the token was rejected
            ChannelError: If the send fails otherwise
        """
        token = self.tokens.get_token()
        try:
            self._request(
                "POST",
                self.send_url,
                json=self.build_message(count, completed, time),
                headers={"Authorization": f"Bearer {token}"},
            )
        except ChannelError as e:
            if e.status_code == 401:
                self.tokens.invalidate()
                raise AuthError("push token rejected (HTTP 401)", 401) from e
            raise
        logger.debug(f"Push sent (count={count})")
