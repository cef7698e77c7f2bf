"""Unit tests for node labelling."""

import httpx
import respx

from tunnel_bootstrap.geo import PROVIDERS, UNKNOWN_LABEL, lookup_label

PRIMARY = PROVIDERS[0].url
SECONDARY = PROVIDERS[1].url


def test_primary_provider_label() -> None:
    with respx.mock(assert_all_called=False) as mock:
        mock.get(PRIMARY).mock(
            return_value=httpx.Response(200, json={"country_code": "US", "org": "Example Org"})
        )
        secondary = mock.get(SECONDARY)

        assert lookup_label() == "US_Example Org"
    assert not secondary.called


@respx.mock
def test_falls_back_to_secondary_provider() -> None:
    respx.get(PRIMARY).mock(return_value=httpx.Response(429))
    respx.get(SECONDARY).mock(
        return_value=httpx.Response(200, json={"countryCode": "DE", "org": "Hoster GmbH"})
    )

    assert lookup_label() == "DE_Hoster GmbH"


@respx.mock
def test_incomplete_answer_moves_on() -> None:
    respx.get(PRIMARY).mock(return_value=httpx.Response(200, json={"country_code": "US"}))
    respx.get(SECONDARY).mock(
        return_value=httpx.Response(200, json={"countryCode": "FR", "org": "Cloud"})
    )

    assert lookup_label() == "FR_Cloud"


@respx.mock
def test_all_providers_failing_yields_placeholder() -> None:
    respx.get(PRIMARY).mock(side_effect=httpx.ConnectTimeout("timeout"))
    respx.get(SECONDARY).mock(return_value=httpx.Response(200, text="not json"))

    assert lookup_label() == UNKNOWN_LABEL


@respx.mock
def test_uses_injected_client() -> None:
    respx.get(PRIMARY).mock(
        return_value=httpx.Response(200, json={"country_code": "JP", "org": "Net"})
    )

    with httpx.Client() as client:
        assert lookup_label(client=client) == "JP_Net"
        assert not client.is_closed
