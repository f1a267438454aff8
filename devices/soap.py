"""Minimal SOAP 1.1 transport for the Viera network control service."""

from dataclasses import dataclass

import httpx
import structlog

from .errors import TransportError, TransportErrorKind

log = structlog.get_logger(__name__)

PORT = 55000
TIMEOUT = 5.0

ENVELOPE = """<?xml version="1.0" encoding="utf-8"?>
<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" s:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">
 <s:Body>
  <u:{action} xmlns:u="{urn}">
   {body}
  </u:{action}>
 </s:Body>
</s:Envelope>"""


@dataclass(frozen=True)
class SoapCommand:
    """A single SOAP action against one control endpoint."""

    path: str
    urn: str
    action: str
    body: str

    @property
    def soap_action(self) -> str:
        return f'"{self.urn}#{self.action}"'

    def envelope(self) -> str:
        # Body is embedded verbatim, callers pass pre-sanitized XML.
        return ENVELOPE.format(action=self.action, urn=self.urn, body=self.body)


async def send_soap(
    host: str,
    command: SoapCommand,
    *,
    port: int = PORT,
    timeout: float = TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """POST one SOAP envelope and return the raw response body.

    Args:
        host: TV IP address or hostname
        command: Action to send
        port: Control port (default: 55000)
        timeout: Request deadline in seconds (default: 5)
        transport: Optional httpx transport, used to stub the TV in tests

    Raises:
        TransportError: On timeout, connection failure or non-200 status.
    """
    url = f"http://{host}:{port}{command.path}"
    headers = {
        "Content-Type": 'text/xml; charset="utf-8"',
        "SOAPAction": command.soap_action,
    }
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, content=command.envelope().encode(), headers=headers)
    except httpx.TimeoutException as e:
        log.debug("SOAP request timed out", host=host, action=command.action)
        raise TransportError(TransportErrorKind.TIMEOUT, "SOAP request timed out") from e
    except (httpx.TransportError, OSError) as e:
        log.debug("SOAP connection failed", host=host, action=command.action, error=str(e))
        raise TransportError(TransportErrorKind.CONNECTION, f"SOAP connection failed: {e}") from e

    if response.status_code != 200:
        raise TransportError(
            TransportErrorKind.HTTP_STATUS,
            f"SOAP request failed: HTTP {response.status_code}",
            status=response.status_code,
        )
    return response.text
