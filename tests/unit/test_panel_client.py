"""Unit tests for PanelClient transport and resource calls."""

import json
import math

import httpx
import pytest
import respx

from panel_provisioner.clients import PANEL_MEDIA_TYPE, PanelClient
from panel_provisioner.contracts.dto import PanelConfig
from panel_provisioner.errors import (
    ApiConnectionError,
    RemoteError,
    RemoteNotFoundError,
    RemoteStateError,
)
from tests.mocks import BrokenLogger

PANEL_URL = "https://panel.example.com"
API_KEY = "ptla_secret"

NODE_ATTRIBUTES = {
    "id": 1,
    "name": "de-fra-1",
    "location_id": 3,
    "fqdn": "node1.example.com",
    "memory": 4096,
    "memory_overallocate": 0,
    "disk": 50000,
    "disk_overallocate": -1,
    "allocated_resources": {"memory": 1024, "disk": 20000},
}


@pytest.fixture
def client():
    with PanelClient(panel_url=PANEL_URL + "/", api_key=API_KEY) as panel_client:
        yield panel_client


class TestTransport:
    def test_request_sends_auth_and_media_type_headers(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.get("/api/application/nodes/1").mock(
                return_value=httpx.Response(200, json={"attributes": NODE_ATTRIBUTES})
            )

            node = client.get_node(1)

            request = route.calls.last.request
            assert request.headers["Authorization"] == f"Bearer {API_KEY}"
            assert request.headers["Content-Type"] == "application/json"
            assert request.headers["Accept"] == PANEL_MEDIA_TYPE
            assert node.id == 1
            assert node.free_capacity("memory") == 3072  # noqa: PLR2004
            assert node.free_capacity("disk") == math.inf

    def test_not_found_raises_subclass_with_details(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/servers/9").mock(
                return_value=httpx.Response(
                    404,
                    json={
                        "errors": [
                            {
                                "code": "NotFoundHttpException",
                                "status": "404",
                                "detail": "The requested resource could not be found.",
                            }
                        ]
                    },
                )
            )

            with pytest.raises(RemoteNotFoundError) as exc_info:
                client.get_server(9)

        err = exc_info.value
        assert err.http_status == 404  # noqa: PLR2004
        assert err.details == [
            {
                "code": "NotFoundHttpException",
                "detail": "The requested resource could not be found.",
            }
        ]
        assert "Details: The requested resource could not be found." in str(err)

    def test_unparseable_error_body_gives_empty_details(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.post("/api/application/servers").mock(
                return_value=httpx.Response(500, text="<html>Server Error</html>")
            )

            with pytest.raises(RemoteError) as exc_info:
                client.create_server({"name": "x"})

        assert not isinstance(exc_info.value, RemoteNotFoundError)
        assert exc_info.value.http_status == 500  # noqa: PLR2004
        assert exc_info.value.details == []

    def test_transport_failure_raises_connection_error(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/nodes/1").mock(
                side_effect=httpx.ConnectError("connection refused")
            )

            with pytest.raises(ApiConnectionError) as exc_info:
                client.get_node(1)

        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    def test_timeout_raises_connection_error(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/locations").mock(
                side_effect=httpx.ReadTimeout("timed out")
            )

            with pytest.raises(ApiConnectionError):
                client.list_locations()

    def test_empty_and_non_json_bodies_decode_to_empty_dict(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.post("/api/application/servers/4/suspend").mock(
                return_value=httpx.Response(204)
            )
            respx_mock.get("/api/application/plain").mock(
                return_value=httpx.Response(200, text="ok")
            )
            respx_mock.get("/api/application/list").mock(
                return_value=httpx.Response(200, json=[1, 2, 3])
            )

            assert client.request("POST", "/api/application/servers/4/suspend") == {}
            assert client.request("GET", "/api/application/plain") == {}
            assert client.request("GET", "/api/application/list") == {}

    def test_no_retry_by_default(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.get("/api/application/nodes/1").mock(
                return_value=httpx.Response(503)
            )

            with pytest.raises(RemoteError):
                client.get_node(1)

        assert route.call_count == 1

    def test_retries_transient_status_when_enabled(self):
        with (
            PanelClient(
                panel_url=PANEL_URL, api_key=API_KEY, max_retries=2, base_delay=0
            ) as retrying,
            respx.mock(base_url=PANEL_URL) as respx_mock,
        ):
            route = respx_mock.get("/api/application/nodes/1").mock(
                side_effect=[
                    httpx.Response(503),
                    httpx.ConnectError("reset"),
                    httpx.Response(200, json={"attributes": NODE_ATTRIBUTES}),
                ]
            )

            node = retrying.get_node(1)

        assert node.name == "de-fra-1"
        assert route.call_count == 3  # noqa: PLR2004

    def test_retry_survives_logging_failure(self, monkeypatch):
        broken = BrokenLogger()
        monkeypatch.setattr("panel_provisioner.clients.panel.logger", broken)

        with (
            PanelClient(
                panel_url=PANEL_URL, api_key=API_KEY, max_retries=1, base_delay=0
            ) as retrying,
            respx.mock(base_url=PANEL_URL) as respx_mock,
        ):
            route = respx_mock.get("/api/application/nodes/1").mock(
                side_effect=[
                    httpx.Response(502),
                    httpx.Response(200, json={"attributes": NODE_ATTRIBUTES}),
                ]
            )

            node = retrying.get_node(1)

        assert node.id == 1
        assert route.call_count == 2  # noqa: PLR2004
        assert broken.attempts == ["panel_request_retry"]

    def test_logging_failure_does_not_replace_remote_error(self, client, monkeypatch):
        monkeypatch.setattr("panel_provisioner.clients.panel.logger", BrokenLogger())

        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/nodes/1").mock(
                return_value=httpx.Response(
                    422, json={"errors": [{"code": "ValidationException", "detail": "bad"}]}
                )
            )

            with pytest.raises(RemoteError) as exc_info:
                client.get_node(1)

        assert exc_info.value.http_status == 422  # noqa: PLR2004

    def test_missing_attributes_raise_remote_state_error(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/nodes/1").mock(
                return_value=httpx.Response(200, json={"object": "node"})
            )

            with pytest.raises(RemoteStateError):
                client.get_node(1)

    def test_rejects_missing_credentials(self):
        with pytest.raises(ValueError):
            PanelClient(panel_url="", api_key=API_KEY)

    def test_from_config_uses_settings_timeout(self, settings):
        settings.panel_timeout_seconds = 5
        panel_client = PanelClient.from_config(
            PanelConfig(panel_url=PANEL_URL, api_key=API_KEY), settings
        )
        try:
            assert panel_client.base_url == PANEL_URL
            assert panel_client._timeout == 5  # noqa: PLR2004
            assert panel_client._max_retries == 0
        finally:
            panel_client.close()


class TestResources:
    def test_collection_reads_follow_pagination(self, client):
        def nodes_page(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params.get("page", "1"))
            return httpx.Response(
                200,
                json={
                    "data": [{"attributes": {**NODE_ATTRIBUTES, "id": page}}],
                    "meta": {"pagination": {"current_page": page, "total_pages": 2}},
                },
            )

        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.get("/api/application/nodes").mock(side_effect=nodes_page)

            nodes = client.list_nodes()

        assert [n.id for n in nodes] == [1, 2]
        assert route.call_count == 2  # noqa: PLR2004
        assert "page" not in route.calls[0].request.url.params

    def test_list_allocations_sets_node_id(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/nodes/1/allocations").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "data": [
                            {
                                "object": "allocation",
                                "attributes": {
                                    "id": 10,
                                    "ip": "10.0.0.1",
                                    "port": 25565,
                                    "assigned": True,
                                },
                            }
                        ]
                    },
                )
            )

            allocations = client.list_allocations(1)

        assert allocations[0].node_id == 1
        assert allocations[0].assigned is True

    def test_create_allocation_sends_ports_as_strings(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.post("/api/application/nodes/1/allocations").mock(
                return_value=httpx.Response(204)
            )

            assert client.create_allocation(1, "10.0.0.1", [25566]) == {}

        assert json.loads(route.calls.last.request.content) == {
            "ip": "10.0.0.1",
            "ports": ["25566"],
        }

    def test_get_egg_reads_variables_from_relationships(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.get("/api/application/nests/2/eggs/5").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "object": "egg",
                        "attributes": {
                            "id": 5,
                            "nest": 2,
                            "docker_image": "ghcr.io/example/java:17",
                            "startup": "java -jar {{SERVER_JARFILE}}",
                            "relationships": {
                                "variables": {
                                    "object": "list",
                                    "data": [
                                        {
                                            "object": "egg_variable",
                                            "attributes": {
                                                "env_variable": "SERVER_JARFILE",
                                                "default_value": "server.jar",
                                            },
                                        }
                                    ],
                                }
                            },
                        },
                    },
                )
            )

            egg = client.get_egg(2, 5)

        assert route.calls.last.request.url.params["include"] == "variables"
        assert [v.env_variable for v in egg.variables] == ["SERVER_JARFILE"]
        assert egg.variables[0].default_value == "server.jar"

    def test_list_nests_with_eggs(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/nests").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "data": [
                            {
                                "attributes": {
                                    "id": 2,
                                    "name": "Minecraft",
                                    "relationships": {
                                        "eggs": {
                                            "data": [
                                                {"attributes": {"id": 5, "name": "Paper"}},
                                                {"attributes": {"id": 6, "name": "Forge"}},
                                            ]
                                        }
                                    },
                                }
                            }
                        ]
                    },
                )
            )

            nests = client.list_nests_with_eggs()

        assert nests[0].name == "Minecraft"
        assert [e.id for e in nests[0].eggs] == [5, 6]

    def test_find_users_by_email_uses_filter(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.get("/api/application/users").mock(
                return_value=httpx.Response(
                    200,
                    json={"data": [{"attributes": {"id": 3, "email": "a@example.com"}}]},
                )
            )

            users = client.find_users_by_email("a@example.com")

        assert route.calls.last.request.url.params["filter[email]"] == "a@example.com"
        assert users[0].id == 3  # noqa: PLR2004

    def test_get_server_startup_reads_variables(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/servers/4").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "attributes": {
                            "id": 4,
                            "relationships": {
                                "variables": {
                                    "data": [
                                        {
                                            "attributes": {
                                                "env_variable": "MC_VERSION",
                                                "server_value": "1.20.4",
                                            }
                                        }
                                    ]
                                }
                            },
                        }
                    },
                )
            )

            variables = client.get_server_startup(4)

        assert variables[0].env_variable == "MC_VERSION"
        assert variables[0].server_value == "1.20.4"

    def test_get_server_resources_keeps_status_fields(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/api/application/servers/4").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "attributes": {
                            "id": 4,
                            "identifier": "1a2b3c4d",
                            "status": "installing",
                            "suspended": False,
                            "limits": {"memory": 1024, "disk": 2048},
                            "feature_limits": {"databases": 1},
                            "container": {"environment": {"RCON_PASS": "hidden"}},
                        }
                    },
                )
            )

            resources = client.get_server_resources(4)

        assert resources == {
            "id": 4,
            "identifier": "1a2b3c4d",
            "status": "installing",
            "suspended": False,
            "limits": {"memory": 1024, "disk": 2048},
            "feature_limits": {"databases": 1},
        }

    def test_sso_redirect(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            route = respx_mock.get("/sso-wemx/").mock(
                return_value=httpx.Response(
                    200, json={"success": True, "redirect": f"{PANEL_URL}/sso-wemx/abc"}
                )
            )

            url = client.get_sso_redirect(3, "sso-secret")

        assert url == f"{PANEL_URL}/sso-wemx/abc"
        assert route.calls.last.request.url.params["user_id"] == "3"

    def test_sso_redirect_missing_raises(self, client):
        with respx.mock(base_url=PANEL_URL) as respx_mock:
            respx_mock.get("/sso-wemx/").mock(
                return_value=httpx.Response(200, json={"message": "plugin disabled"})
            )

            with pytest.raises(RemoteStateError, match="plugin disabled"):
                client.get_sso_redirect(3, "sso-secret")
