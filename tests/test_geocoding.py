import asyncio

import httpx
import pytest
import respx

from deliveryline.address import AddressAccumulator
from deliveryline.geocoding import GEOCODE_URL, GoogleAddressValidator, parse_geocode_result
from deliveryline.tiers import CollaboratorError

FULL_RESULT = {
    "status": "OK",
    "results": [{
        "formatted_address": "123 Main St, Springfield, IL 62704, USA",
        "address_components": [
            {"long_name": "123", "short_name": "123", "types": ["street_number"]},
            {"long_name": "Main Street", "short_name": "Main St", "types": ["route"]},
            {"long_name": "Springfield", "short_name": "Springfield", "types": ["locality", "political"]},
            {"long_name": "Illinois", "short_name": "IL", "types": ["administrative_area_level_1", "political"]},
            {"long_name": "62704", "short_name": "62704", "types": ["postal_code"]},
            {"long_name": "United States", "short_name": "US", "types": ["country", "political"]},
        ],
    }],
}

CITY_ONLY_RESULT = {
    "status": "OK",
    "results": [{
        "formatted_address": "Springfield, IL, USA",
        "address_components": [
            {"long_name": "Springfield", "short_name": "Springfield", "types": ["locality"]},
            {"long_name": "Illinois", "short_name": "IL", "types": ["administrative_area_level_1"]},
        ],
    }],
}


class TestParseGeocodeResult:
    def test_full_address_is_valid(self):
        result = parse_geocode_result("123 Main Street Springfield", FULL_RESULT)
        assert result.is_valid
        assert result.confidence == pytest.approx(1.0)
        assert result.components["state"] == "IL"
        assert result.components["street_name"] == "Main Street"
        assert result.standardized == "123 Main St, Springfield, IL 62704, USA"

    def test_partial_address_is_invalid_with_lower_confidence(self):
        result = parse_geocode_result("Springfield", CITY_ONLY_RESULT)
        assert not result.is_valid
        assert result.confidence == pytest.approx(0.7)

    def test_zero_results_is_invalid(self):
        result = parse_geocode_result("nowhere", {"status": "ZERO_RESULTS", "results": []})
        assert not result.is_valid
        assert result.confidence == 0.0

    def test_other_status_raises(self):
        with pytest.raises(CollaboratorError):
            parse_geocode_result("x", {"status": "REQUEST_DENIED", "error_message": "bad key"})


class TestGoogleAddressValidator:
    @pytest.mark.asyncio
    async def test_sends_address_and_key(self):
        with respx.mock:
            route = respx.get(GEOCODE_URL).mock(return_value=httpx.Response(200, json=FULL_RESULT))
            validator = GoogleAddressValidator(api_key="maps-key")
            result = await validator.validate("123 Main Street Springfield")
            assert result.is_valid
            params = route.calls[0].request.url.params
            assert params["address"] == "123 Main Street Springfield"
            assert params["key"] == "maps-key"

    @pytest.mark.asyncio
    async def test_http_error_raises_collaborator_error(self):
        with respx.mock:
            respx.get(GEOCODE_URL).mock(return_value=httpx.Response(500))
            validator = GoogleAddressValidator(api_key="maps-key")
            with pytest.raises(CollaboratorError):
                await validator.validate("123 Main Street")

    @pytest.mark.asyncio
    async def test_denied_status_raises(self):
        with respx.mock:
            respx.get(GEOCODE_URL).mock(
                return_value=httpx.Response(200, json={"status": "OVER_QUERY_LIMIT"})
            )
            validator = GoogleAddressValidator(api_key="maps-key")
            with pytest.raises(CollaboratorError):
                await validator.validate("123 Main Street")

    def test_configured_needs_key(self):
        assert not GoogleAddressValidator(api_key="").configured
        assert GoogleAddressValidator(api_key="maps-key").configured


def _slow_geocode(attempts):
    async def respond(request):
        attempts.append(request)
        await asyncio.sleep(1)
        return httpx.Response(200, json=FULL_RESULT)
    return respond


class TestGeocodingTimeouts:
    @pytest.mark.asyncio
    async def test_own_timeout_counts_as_failure(self):
        with respx.mock:
            attempts = []
            respx.get(GEOCODE_URL).mock(side_effect=_slow_geocode(attempts))
            validator = GoogleAddressValidator(api_key="maps-key", timeout=0.05)
            for _ in range(3):
                with pytest.raises(CollaboratorError, match="timed out"):
                    await validator.validate("123 Main Street")
            with pytest.raises(CollaboratorError, match="circuit breaker open"):
                await validator.validate("123 Main Street")
            assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_accumulator_deadline_opens_circuit(self):
        with respx.mock:
            attempts = []
            respx.get(GEOCODE_URL).mock(side_effect=_slow_geocode(attempts))
            validator = GoogleAddressValidator(api_key="maps-key")
            accumulator = AddressAccumulator(validator, timeout=0.05)
            for _ in range(5):
                candidate = await accumulator.evaluate("123 Main Street Springfield IL 62704")
                assert candidate.source == "basic"
                assert candidate.is_complete
            assert validator._circuit.is_open
            assert len(attempts) == 3
