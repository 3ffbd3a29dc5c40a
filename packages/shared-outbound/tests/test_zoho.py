"""Tests for ZohoAdapter."""

from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest
from syncbridge.outbound.adapters.zoho import VALID_DOMAINS, ZohoAdapter, build_coql, coql_literal
from syncbridge.outbound.config import VendorType
from syncbridge.outbound.credentials import InMemoryCredentialStore, VendorCredential
from syncbridge.outbound.exceptions import AuthenticationError, ConfigError, VendorHTTPError
from syncbridge.outbound.query import QueryOptions

TOKEN_PATH = "/oauth/v2/token"
API = "/crm/v3"


class TokenEndpoint:
    """Scripted Zoho accounts server.

    Issues a refresh token only for the authorization-code grant, as Zoho
    does.
    """

    def __init__(self) -> None:
        self.grants: list[dict[str, list[str]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        self.grants.append(form)
        body = {
            "access_token": f"1000.access.{len(self.grants)}",
            "api_domain": "https://www.zohoapis.com",
            "token_type": "Bearer",
            "expires_in": 3600,
        }
        if form["grant_type"] == ["authorization_code"]:
            body["refresh_token"] = "1000.refresh"
        return httpx.Response(200, json=body)


@pytest.fixture
def token_endpoint(mock_api) -> TokenEndpoint:
    """Route the token path to a scripted accounts server."""
    endpoint = TokenEndpoint()
    mock_api.add("POST", TOKEN_PATH, handler=endpoint)
    return endpoint


@pytest.fixture
def adapter(zoho_config, http_client, credential_store, token_endpoint) -> ZohoAdapter:
    """Create a Zoho adapter against the scripted API."""
    return ZohoAdapter(zoho_config, credential_store=credential_store, client=http_client)


class TestCoqlTranslation:
    """Tests for COQL building."""

    def test_unfiltered_query_has_where_clause(self) -> None:
        """Test an always-true condition is used without filters."""
        assert build_coql("Deals", QueryOptions.parse({})) == (
            "select id from Deals where id is not null limit 100 offset 0"
        )

    def test_full_query(self) -> None:
        """Test filters, sort and paging in one statement."""
        query = QueryOptions.parse(
            {
                "select": "Deal_Name Amount",
                "Stage": ["Closed Won", "Closed Lost"],
                "Amount": {"$lte": 500},
                "Closing_Date": None,
                "sort": "-Amount",
                "limit": 50,
                "page": 3,
            }
        )

        assert build_coql("Deals", query) == (
            "select Deal_Name, Amount from Deals "
            "where Stage in ('Closed Won', 'Closed Lost') and Amount <= 500 and Closing_Date is null "
            "order by Amount desc limit 50 offset 100"
        )

    def test_count_query(self) -> None:
        """Test the count statement keeps filters and drops paging."""
        query = QueryOptions.parse({"Email": {"$exists": True}, "limit": 5})

        assert build_coql("Contacts", query, count=True) == (
            "select COUNT(id) from Contacts where Email is not null"
        )

    def test_literals(self) -> None:
        """Test strings are quoted and escaped."""
        assert coql_literal("O'Brien") == "'O\\'Brien'"
        assert coql_literal(False) == "false"
        assert coql_literal(3) == "3"


class TestZohoConfiguration:
    """Tests for Zoho domain handling."""

    def test_vendor_type(self, adapter) -> None:
        """Test adapter has correct type."""
        assert adapter.vendor_type == VendorType.ZOHO

    def test_invalid_domain_rejected(self, zoho_config) -> None:
        """Test unknown data centers are rejected at construction."""
        zoho_config.connection_params["domain"] = "evil.example.com"

        with pytest.raises(ConfigError, match="Invalid Zoho domain"):
            ZohoAdapter(zoho_config)

    @pytest.mark.parametrize("domain", sorted(VALID_DOMAINS))
    def test_regional_urls(self, zoho_config, domain) -> None:
        """Test token and API URLs follow the data center."""
        zoho_config.connection_params["domain"] = domain
        adapter = ZohoAdapter(zoho_config)
        region = domain.removeprefix("zohoapis")

        assert adapter.token_url == f"https://accounts.zoho{region}/oauth/v2/token"
        assert adapter.api_base_url == f"https://www.{domain}/crm/v3"

    def test_ref_url(self, adapter) -> None:
        """Test UI links use the tab name of the module."""
        assert adapter.get_ref_url("Deals", "42") == "https://crm.zoho.com/crm/tab/Potentials/42"
        assert adapter.get_ref_url("Contacts", "7") == "https://crm.zoho.com/crm/tab/Contacts/7"


class TestZohoAuthentication:
    """Tests for the refresh-token flow."""

    @pytest.mark.asyncio
    async def test_grant_token_exchanged_once(self, adapter, token_endpoint, credential_store) -> None:
        """Test the grant token is exchanged and the refresh token persisted."""
        token = await adapter.authenticate()

        assert token == "1000.access.1"
        assert token_endpoint.grants[0]["grant_type"] == ["authorization_code"]
        assert token_endpoint.grants[0]["code"] == ["1000.grant"]
        assert credential_store.get("zoho-refresh-test") == "1000.refresh"
        assert adapter.refresh_token == "1000.refresh"

    @pytest.mark.asyncio
    async def test_refresh_grant_after_invalidation(self, adapter, token_endpoint) -> None:
        """Test later exchanges use the refresh token, which is kept."""
        await adapter.authenticate()
        adapter.lifecycle.invalidate()

        token = await adapter.authenticate()

        assert token == "1000.access.2"
        assert token_endpoint.grants[1]["grant_type"] == ["refresh_token"]
        assert token_endpoint.grants[1]["refresh_token"] == ["1000.refresh"]
        assert adapter.lifecycle.credential.refresh_token == "1000.refresh"

    @pytest.mark.asyncio
    async def test_stored_refresh_token_preferred(self, zoho_config, http_client, token_endpoint) -> None:
        """Test a persisted refresh token is used instead of the grant token."""
        store = InMemoryCredentialStore({"zoho-refresh-test": "1000.stored"})
        adapter = ZohoAdapter(zoho_config, credential_store=store, client=http_client)

        await adapter.authenticate()

        assert token_endpoint.grants[0]["grant_type"] == ["refresh_token"]
        assert token_endpoint.grants[0]["refresh_token"] == ["1000.stored"]

    @pytest.mark.asyncio
    async def test_cached_token_reused_across_adapters(
        self, zoho_config, http_client, credential_store, token_endpoint
    ) -> None:
        """Test a second adapter on the same store skips the exchange."""
        await ZohoAdapter(zoho_config, credential_store=credential_store, client=http_client).authenticate()

        second = ZohoAdapter(zoho_config, credential_store=credential_store, client=http_client)

        assert await second.authenticate() == "1000.access.1"
        assert len(token_endpoint.grants) == 1
        stored = VendorCredential.from_json(credential_store.get("zoho-token-test") or "")
        assert stored is not None
        assert stored.extra["api_domain"] == "https://www.zohoapis.com"

    @pytest.mark.asyncio
    async def test_no_grant_available(self, zoho_config, http_client) -> None:
        """Test missing refresh and grant tokens are reported."""
        zoho_config.credentials.pop("grant_token")
        adapter = ZohoAdapter(zoho_config, client=http_client)

        with pytest.raises(AuthenticationError, match="refresh_token or grant_token"):
            await adapter.authenticate()

    @pytest.mark.asyncio
    async def test_grant_error_in_ok_response(self, zoho_config, http_client, mock_api) -> None:
        """Test a 200 response carrying an error is an authentication failure."""
        mock_api.add("POST", TOKEN_PATH, json={"error": "invalid_code"})
        adapter = ZohoAdapter(zoho_config, client=http_client)

        with pytest.raises(AuthenticationError, match="invalid_code"):
            await adapter.authenticate()

    @pytest.mark.asyncio
    async def test_oauth_header(self, adapter, mock_api) -> None:
        """Test API calls carry the Zoho-oauthtoken header."""
        mock_api.add("GET", f"{API}/Deals/42", json={"data": [{"id": "42"}]})

        await adapter.find_one("Deals", "42")

        assert mock_api.requests[-1].headers["Authorization"] == "Zoho-oauthtoken 1000.access.1"

    @pytest.mark.asyncio
    async def test_401_refreshes_and_retries(self, adapter, mock_api, token_endpoint) -> None:
        """Test a rejected token is refreshed and the call retried once."""
        mock_api.add("GET", f"{API}/Deals/42", status=401, json={"code": "INVALID_TOKEN", "message": "invalid oauth token"})
        mock_api.add("GET", f"{API}/Deals/42", json={"data": [{"id": "42"}]})

        assert await adapter.find_one("Deals", "42") == {"id": "42"}
        assert [g["grant_type"] for g in token_endpoint.grants] == [["authorization_code"], ["refresh_token"]]


class TestZohoCrud:
    """Tests for Zoho CRUD operations."""

    @pytest.mark.asyncio
    async def test_create(self, adapter, mock_api) -> None:
        """Test records are wrapped in a data list and read back."""
        mock_api.add(
            "POST",
            f"{API}/Deals",
            status=201,
            json={"data": [{"code": "SUCCESS", "status": "success", "details": {"id": "42"}}]},
        )
        mock_api.add("PUT", f"{API}/Deals/42/Contact_Roles/7", json={"data": [{"status": "success"}]})
        mock_api.add("GET", f"{API}/Deals/42", json={"data": [{"id": "42", "Deal_Name": "Renewal"}]})

        record = await adapter.create("Deals", {"Deal_Name": "Renewal", "associations": {"Contact_Roles": "7"}})

        assert record == {"id": "42", "Deal_Name": "Renewal"}
        (create,) = mock_api.calls("POST", f"{API}/Deals")
        assert json.loads(create.content) == {"data": [{"Deal_Name": "Renewal"}]}

    @pytest.mark.asyncio
    async def test_rejected_entry_raises(self, adapter, mock_api) -> None:
        """Test a per-record error inside a 2xx response raises."""
        mock_api.add(
            "POST",
            f"{API}/Deals",
            status=202,
            json={
                "data": [
                    {"code": "MANDATORY_NOT_FOUND", "status": "error", "message": "required field not found"}
                ]
            },
        )

        with pytest.raises(VendorHTTPError, match="MANDATORY_NOT_FOUND"):
            await adapter.create("Deals", {"Amount": 1})

    @pytest.mark.asyncio
    async def test_no_content_is_missing(self, adapter, mock_api) -> None:
        """Test a 204 fetch yields None."""
        mock_api.add("GET", f"{API}/Deals/404", status=204)

        assert await adapter.find_one("Deals", "404") is None

    @pytest.mark.asyncio
    async def test_find_skips_data_query_when_empty(self, adapter, mock_api) -> None:
        """Test a zero count answers without a second query."""
        mock_api.add("POST", f"{API}/coql", json={"data": [{"COUNT(id)": 0}]})

        result = await adapter.find("Deals", {"Stage": "Closed Won"})

        assert result.data == []
        assert result.pagination.last_page == 0
        assert len(mock_api.calls("POST", f"{API}/coql")) == 1

    @pytest.mark.asyncio
    async def test_find(self, adapter, mock_api) -> None:
        """Test count and data queries are sent as COQL."""
        mock_api.add("POST", f"{API}/coql", json={"data": [{"COUNT(id)": 3}]})
        mock_api.add("POST", f"{API}/coql", json={"data": [{"id": "1"}, {"id": "2"}]})

        result = await adapter.find("Deals", {"Stage": "Closed Won", "limit": 2})

        assert result.data == [{"id": "1"}, {"id": "2"}]
        assert result.pagination.to_dict() == {"count": 3, "page": 1, "limit": 2, "lastPage": 2, "startIndex": 0}
        queries = [json.loads(r.content)["select_query"] for r in mock_api.calls("POST", f"{API}/coql")]
        assert queries == [
            "select COUNT(id) from Deals where Stage = 'Closed Won'",
            "select id from Deals where Stage = 'Closed Won' limit 2 offset 0",
        ]

    @pytest.mark.asyncio
    async def test_update_error_message(self, adapter, mock_api) -> None:
        """Test vendor codes are included in HTTP error messages."""
        mock_api.add(
            "PUT",
            f"{API}/Deals/42",
            status=400,
            json={"data": [{"code": "INVALID_DATA", "message": "invalid data", "status": "error"}]},
        )

        with pytest.raises(VendorHTTPError) as exc_info:
            await adapter.update("Deals", "42", {"Amount": "abc"})

        assert exc_info.value.status == 400
        assert exc_info.value.message == "zoho update Deals 42: INVALID_DATA: invalid data"

    @pytest.mark.asyncio
    async def test_delete(self, adapter, mock_api) -> None:
        """Test delete() reports success."""
        mock_api.add("DELETE", f"{API}/Deals/42", json={"data": [{"code": "SUCCESS", "status": "success"}]})

        assert await adapter.delete("Deals", "42") is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 200])
    async def test_delete_unknown_id(self, adapter, mock_api, status) -> None:
        """Test delete() reports False when Zoho rejects the record id."""
        mock_api.add(
            "DELETE",
            f"{API}/Deals/404404",
            status=status,
            json={
                "data": [
                    {
                        "code": "INVALID_DATA",
                        "details": {"id": "404404"},
                        "message": "the related id given seems to be invalid",
                        "status": "error",
                    }
                ]
            },
        )

        assert await adapter.delete("Deals", "404404") is False

    @pytest.mark.asyncio
    async def test_delete_other_rejection_raises(self, adapter, mock_api) -> None:
        """Test a rejection that does not name the id still raises."""
        mock_api.add(
            "DELETE",
            f"{API}/Deals/42",
            status=400,
            json={
                "data": [
                    {
                        "code": "INVALID_DATA",
                        "details": {"api_name": "Stage"},
                        "message": "invalid data",
                        "status": "error",
                    }
                ]
            },
        )

        with pytest.raises(VendorHTTPError) as exc_info:
            await adapter.delete("Deals", "42")

        assert exc_info.value.status == 400
