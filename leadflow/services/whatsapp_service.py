import hashlib
import hmac
import re
import time
from typing import Optional
from urllib.parse import quote

import httpx

from leadflow.config import settings
from leadflow.logging_config import get_logger
from leadflow.services.alert_service import alert_critical
from leadflow.services.result import Result

logger = get_logger("whatsapp_service")


def to_number(address: Optional[str]) -> str:
    """Digits-only number for the gateway, from a JID or a loosely formatted phone."""
    if not address:
        return ""
    local = str(address).split("@", 1)[0].split(":", 1)[0]
    return re.sub(r"\D", "", local)


def to_jid(number: str) -> str:
    return f"{to_number(number)}@s.whatsapp.net"


class EvolutionClient:
    """Outbound delivery through the Evolution API.

    Every call is best effort: failures are logged and reported as False.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        default_instance: str,
        timeout_seconds: float = 15.0,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.default_instance = default_instance
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _post(self, path: str, payload: dict, *, what: str) -> bool:
        if not self.configured:
            logger.warning(f"Evolution API not configured, {what} not sent")
            alert_critical("WhatsApp send skipped", {"what": what, "error": "missing_evolution_config"})
            return False
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.base_url}{path}",
                    headers={"Content-Type": "application/json", "apikey": self.api_key},
                    json=payload,
                )
        except httpx.TimeoutException:
            logger.warning(f"Evolution API timeout on {what}", extra={"context": {"number": payload.get("number")}})
            return False
        except httpx.HTTPError as e:
            logger.error(f"Evolution API error on {what}: {e}", extra={"context": {"number": payload.get("number")}})
            return False

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Evolution API rejected {what}: status={response.status_code}",
                extra={"context": {"number": payload.get("number"), "body": response.text[:200]}},
            )
            return False
        return True

    def send_text(
        self,
        instance: Optional[str],
        address: str,
        text: str,
        options: Optional[dict] = None,
    ) -> bool:
        number = to_number(address)
        if not number or not text:
            logger.warning("send_text: missing number or text")
            return False
        payload = {"number": number, "text": text}
        if options:
            payload.update(options)
        ok = self._post(f"/message/sendText/{instance or self.default_instance}", payload, what="text")
        if ok:
            logger.info(f"Delivered text: number={number}")
        return ok

    def send_audio(self, instance: Optional[str], address: str, audio_url: str) -> bool:
        number = to_number(address)
        if not number or not audio_url:
            logger.warning("send_audio: missing number or audio_url")
            return False
        payload = {"number": number, "audio": audio_url}
        return self._post(f"/message/sendWhatsAppAudio/{instance or self.default_instance}", payload, what="audio")

    def send_presence(self, instance: Optional[str], address: str, kind: str = "composing", duration_ms: int = 2000) -> bool:
        number = to_number(address)
        if not number:
            return False
        payload = {"number": number, "presence": kind, "delay": int(duration_ms)}
        return self._post(f"/chat/sendPresence/{instance or self.default_instance}", payload, what="presence")

    def connection_state(self, instance: Optional[str] = None, timeout_seconds: float = 8.0) -> Result[str]:
        """Gateway-reported state of the instance, e.g. "open" or "close"."""
        instance = instance or self.default_instance
        try:
            with httpx.Client(timeout=timeout_seconds) as client:
                response = client.get(
                    f"{self.base_url}/instance/connectionState/{instance}",
                    headers={"apikey": self.api_key},
                )
        except httpx.HTTPError as e:
            return Result.failure(str(e), "gateway_unreachable")

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if not 200 <= response.status_code < 300:
            error = data.get("message") or data.get("error") or f"status {response.status_code}"
            return Result.failure(str(error), f"http_{response.status_code}")

        state = data.get("state")
        if not state and isinstance(data.get("instance"), dict):
            state = data["instance"].get("state")
        return Result.success(str(state) if state else "unknown")


def _normalize_media_path(path: str) -> str:
    normalized = (path or "").strip().lstrip("/")
    return normalized.replace("\\", "/")


def _sign_media_path(path: str, expires: int, secret: str) -> str:
    payload = f"{path}:{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def build_signed_media_url(relative_path: str, *, ttl_seconds: Optional[int] = None) -> Optional[str]:
    """Signed public URL for a file under media_storage_dir, served by /media."""
    if not settings.media_signing_secret:
        logger.error("MEDIA_SIGNING_SECRET not configured")
        return None
    ttl = ttl_seconds if ttl_seconds is not None else settings.media_url_ttl_seconds
    expires = int(time.time()) + max(int(ttl), 60)
    normalized_path = _normalize_media_path(relative_path)
    signature = _sign_media_path(normalized_path, expires, settings.media_signing_secret)
    quoted_path = quote(normalized_path, safe="/")
    return f"{settings.public_base_url.rstrip('/')}/media/{quoted_path}?expires={expires}&sig={signature}"


def verify_signed_media_path(relative_path: str, expires: int, signature: str) -> bool:
    if not settings.media_signing_secret or not signature:
        return False
    if expires < int(time.time()):
        return False
    normalized_path = _normalize_media_path(relative_path)
    expected = _sign_media_path(normalized_path, expires, settings.media_signing_secret)
    return hmac.compare_digest(expected, signature)
