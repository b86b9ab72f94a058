"""Pinata client for pinning files to IPFS.

Signed delivery note PDFs are stored by content identifier (CID) instead
of a mutable URL; readers resolve the CID through a public gateway.
"""
import json
import logging
from typing import Optional

import httpx

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import PinningNotConfiguredError, PinningUploadError

logger = logging.getLogger(__name__)


class PinningClient:
    """Upload, unpin and resolve content on a Pinata-compatible pinning API."""

    def __init__(
        self,
        api_key: str,
        secret_api_key: str,
        api_url: str = "https://api.pinata.cloud",
        pin_path: str = "/pinning/pinFileToIPFS",
        gateway_url: str = "https://gateway.pinata.cloud",
        cid_version: int = 0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.secret_api_key = secret_api_key
        self.api_url = api_url.rstrip("/")
        self.pin_path = pin_path
        self.gateway_url = gateway_url
        self.cid_version = cid_version
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings = default_settings, **kwargs) -> "PinningClient":
        return cls(
            api_key=config.PINATA_API_KEY,
            secret_api_key=config.PINATA_SECRET_API_KEY,
            api_url=config.PINATA_API_URL,
            pin_path=config.PINATA_PIN_PATH,
            gateway_url=config.PINATA_GATEWAY_URL,
            cid_version=config.PINATA_CID_VERSION,
            timeout=config.PINNING_TIMEOUT_SECONDS,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.secret_api_key)

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise PinningNotConfiguredError("IPFS service is not configured.")

    def _headers(self) -> dict:
        return {
            "pinata_api_key": self.api_key,
            "pinata_secret_api_key": self.secret_api_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    def gateway_url_for(self, cid: Optional[str]) -> Optional[str]:
        """Full gateway URL for a CID, or None when there is no CID."""
        if not cid:
            return None
        gateway = self.gateway_url if self.gateway_url.endswith("/") else f"{self.gateway_url}/"
        return f"{gateway}ipfs/{cid}"

    async def upload(self, data: bytes, name: str) -> str:
        """Pin a byte buffer and return its CID.

        Raises PinningNotConfiguredError before any I/O when credentials are
        missing, and PinningUploadError on transport errors, timeouts,
        non-2xx responses or a response without a CID.
        """
        self._ensure_configured()

        files = {"file": (name, data, "application/octet-stream")}
        form = {
            "pinataMetadata": json.dumps({"name": name}),
            "pinataOptions": json.dumps({"cidVersion": self.cid_version}),
        }

        try:
            async with self._client() as client:
                response = await client.post(self.pin_path, files=files, data=form)
        except httpx.TimeoutException as e:
            logger.error("Timed out pinning %s to IPFS", name)
            raise PinningUploadError(
                f"Failed to upload {name} to IPFS.", extra={"detail": "timeout"}
            ) from e
        except httpx.HTTPError as e:
            logger.error("Error uploading %s to IPFS: %s", name, e)
            raise PinningUploadError(
                f"Failed to upload {name} to IPFS.", extra={"detail": str(e)}
            ) from e

        if not response.is_success:
            logger.error("Pinning %s failed with status %s", name, response.status_code)
            raise PinningUploadError(
                f"Failed to upload {name} to IPFS.",
                extra={"detail": f"status {response.status_code}"},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise PinningUploadError(
                f"Failed to upload {name} to IPFS.", extra={"detail": "invalid JSON response"}
            ) from e

        cid = body.get("IpfsHash") if isinstance(body, dict) else None
        if not cid:
            # A 200 without a CID is not a successful pin
            raise PinningUploadError(
                f"Failed to upload {name} to IPFS.", extra={"detail": "response has no IpfsHash"}
            )

        logger.info("Pinned %s to IPFS. CID: %s", name, cid)
        return cid

    async def unpin(self, cid: str) -> None:
        """Remove a pin. Used to compensate an upload whose note was never committed."""
        self._ensure_configured()
        try:
            async with self._client() as client:
                response = await client.delete(f"/pinning/unpin/{cid}")
        except httpx.HTTPError as e:
            raise PinningUploadError(f"Failed to unpin {cid}.", extra={"detail": str(e)}) from e

        if not response.is_success:
            raise PinningUploadError(
                f"Failed to unpin {cid}.", extra={"detail": f"status {response.status_code}"}
            )
        logger.info("Unpinned %s", cid)

    async def test_authentication(self) -> bool:
        """Check the credentials against the pinning API. Never raises."""
        if not self.is_configured:
            logger.warning(
                "PINATA_API_KEY and/or PINATA_SECRET_API_KEY not configured. "
                "Signing delivery notes will fail until they are set."
            )
            return False
        try:
            async with self._client() as client:
                response = await client.get("/data/testAuthentication")
        except httpx.HTTPError as e:
            logger.error("Pinata authentication check failed: %s", e)
            return False

        if not response.is_success:
            logger.error("Pinata authentication failed with status %s", response.status_code)
            return False
        logger.info("Pinata authentication successful")
        return True
