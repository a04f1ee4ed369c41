import asyncio
import logging

import httpx

from deliveryline.address import AddressValidation
from deliveryline.circuit_breaker import CircuitBreaker
from deliveryline.tiers import CollaboratorError

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

_CITY_TYPES = ("locality", "postal_town", "sublocality")


def _component(components: list[dict], kind: str, short: bool = False) -> str:
    for comp in components:
        if kind in comp.get("types", []):
            return comp.get("short_name" if short else "long_name", "") or ""
    return ""


def _confidence(number: str, street: str, city: str, state: str, zipcode: str) -> float:
    confidence = 0.5
    if number and street:
        confidence += 0.2
    if city:
        confidence += 0.1
    if state:
        confidence += 0.1
    if zipcode:
        confidence += 0.1
    return min(confidence, 1.0)


def parse_geocode_result(address: str, data: dict) -> AddressValidation:
    """Turn a Geocoding API response body into an AddressValidation."""
    status = data.get("status", "")
    if status == "ZERO_RESULTS":
        return AddressValidation(is_valid=False, confidence=0.0, source="google")
    if status != "OK":
        raise CollaboratorError(
            f"geocoding status {status}: {data.get('error_message', 'no detail')}"
        )
    results = data.get("results") or []
    if not results:
        return AddressValidation(is_valid=False, confidence=0.0, source="google")

    top = results[0]
    comps = top.get("address_components", [])
    number = _component(comps, "street_number")
    street = _component(comps, "route")
    city = next((c for c in (_component(comps, t) for t in _CITY_TYPES) if c), "")
    state = _component(comps, "administrative_area_level_1", short=True)
    zipcode = _component(comps, "postal_code")
    country = _component(comps, "country", short=True)

    components = {
        "street_number": number,
        "street_name": street,
        "city": city,
        "state": state,
        "zipcode": zipcode,
        "country": country,
    }
    is_valid = all([number, street, city, state, zipcode])
    confidence = _confidence(number, street, city, state, zipcode)
    logger.debug("Geocoded %r -> %s (valid=%s)", address, top.get("formatted_address"), is_valid)
    return AddressValidation(
        is_valid=is_valid,
        confidence=confidence,
        components=components,
        standardized=top.get("formatted_address")
        or ", ".join(p for p in components.values() if p),
        source="google",
    )


class GoogleAddressValidator:
    """Address validator backed by the Google Geocoding API."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="Google geocoding",
        )
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def close(self):
        await self._client.aclose()

    async def validate(self, address: str) -> AddressValidation:
        if not self._circuit.should_try():
            raise CollaboratorError("geocoding circuit breaker open")
        try:
            resp = await asyncio.wait_for(
                self._client.get(
                    GEOCODE_URL,
                    params={"address": address, "key": self.api_key},
                ),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            result = parse_geocode_result(address, resp.json())
        except asyncio.TimeoutError as e:
            self._circuit.record_failure()
            logger.warning("Geocoding timed out after %.1fs", self.timeout)
            raise CollaboratorError(f"geocoding timed out after {self.timeout:.1f}s") from e
        except asyncio.CancelledError:
            # The tier deadline fired before ours
            self._circuit.record_failure()
            raise
        except (httpx.HTTPError, ValueError, CollaboratorError) as e:
            self._circuit.record_failure()
            logger.error("Geocoding failed for %r: %s", address, e)
            if isinstance(e, CollaboratorError):
                raise
            raise CollaboratorError(f"geocoding request failed: {e}") from e
        self._circuit.record_success()
        return result
