"""
HTTP Client
Shared requests session used by the catalog client and the install pipeline
"""

import asyncio
import logging

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64)'
CHUNK_SIZE = 8192


class HttpClient:
    def __init__(self, custom_user_agent=None, use_custom=False, timeout=30, session=None):
        """Initialize the shared session.

        Args:
            custom_user_agent: Optional str - User agent to send instead of the default
            use_custom: bool - Whether custom_user_agent is honoured
            timeout: int - Per-request timeout in seconds
            session: Optional requests.Session - Injected session (tests)
        """
        self.timeout = timeout
        self.session = session or requests.Session()

        user_agent = DEFAULT_USER_AGENT
        if use_custom and custom_user_agent and custom_user_agent.strip():
            user_agent = custom_user_agent.strip()

        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'application/json',
        })

    @classmethod
    def from_settings(cls, settings, **kwargs):
        return cls(
            custom_user_agent=settings.custom_user_agent,
            use_custom=settings.use_custom_user_agent,
            **kwargs
        )

    @property
    def user_agent(self):
        return self.session.headers.get('User-Agent')

    def _get_text(self, url, params=None):
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    def _download(self, url, dest):
        with self.session.get(url, stream=True, timeout=self.timeout) as response:
            if not response.ok:
                logger.debug(f"GET {url} returned {response.status_code}")
                return False
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        return True

    async def fetch_text(self, url, params=None):
        """GET a URL and return its body.

        Raises:
            requests.RequestException - On network failure or non-2xx status
        """
        return await asyncio.to_thread(self._get_text, url, params)

    async def fetch_to_file(self, url, dest):
        """Stream a URL to a file without buffering it in memory.

        Returns:
            bool - False if the server answered with a non-2xx status

        Raises:
            requests.RequestException, OSError - On network or disk failure
        """
        return await asyncio.to_thread(self._download, url, dest)

    def close(self):
        self.session.close()
