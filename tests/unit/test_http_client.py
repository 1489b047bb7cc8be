"""Unit tests for the control-plane client using respx to mock httpx."""

import json

import httpx
import pytest
import respx

from cloud_reconciler.client.http import ORGANISATION_HEADER, ControlPlaneClient
from cloud_reconciler.config.models import ApiConfig, WaitPolicy
from cloud_reconciler.errors import ResourceNotFoundError, TransportError
from cloud_reconciler.resources.driver import LifecycleDriver
from cloud_reconciler.resources.kinds import get_kind

API_URL = "http://api.test"


@pytest.fixture
def config() -> ApiConfig:
    return ApiConfig(
        base_url=API_URL,
        token="s3cret",
        organisation="org-42",
        retry_max_attempts=3,
        retry_wait_seconds=0.01,
        retry_max_wait_seconds=0.01,
    )


class TestApiFor:
    def test_flat_collection(self, config: ApiConfig):
        client = ControlPlaneClient(config)
        api = client.api_for(get_kind("vpc"))
        assert api.path == "/v1/vpcs"

    def test_node_pool_path_uses_parent(self, config: ApiConfig):
        client = ControlPlaneClient(config)
        api = client.api_for(get_kind("kubernetes_node_pool"), parent="k8s-1")
        assert api.path == "/v1/kubernetes/clusters/k8s-1/node-pools"

    def test_node_pool_requires_parent(self, config: ApiConfig):
        client = ControlPlaneClient(config)
        with pytest.raises(ValueError, match="parent"):
            client.api_for(get_kind("kubernetes_node_pool"))


class TestHttpResourceApi:
    @pytest.mark.asyncio
    @respx.mock
    async def test_get_sends_auth_and_organisation(self, config: ApiConfig):
        route = respx.get(f"{API_URL}/v1/subnets/sn-1").mock(
            return_value=httpx.Response(
                200, json={"identity": "sn-1", "status": "ready", "cidr": "10.0.1.0/24"}
            )
        )
        async with ControlPlaneClient(config) as client:
            result = await client.api_for(get_kind("subnet")).get("sn-1")

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer s3cret"
        assert request.headers[ORGANISATION_HEADER] == "org-42"
        assert result.identity == "sn-1"
        assert result.status == "ready"
        assert result.attribute("cidr") == "10.0.1.0/24"

    @pytest.mark.asyncio
    @respx.mock
    async def test_404_is_not_found(self, config: ApiConfig):
        respx.get(f"{API_URL}/v1/subnets/sn-1").mock(return_value=httpx.Response(404))
        async with ControlPlaneClient(config) as client:
            with pytest.raises(ResourceNotFoundError) as exc_info:
                await client.api_for(get_kind("subnet")).get("sn-1")
        assert exc_info.value.identity == "sn-1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_500_is_transport_error(self, config: ApiConfig):
        respx.get(f"{API_URL}/v1/subnets/sn-1").mock(
            return_value=httpx.Response(500, text="internal error")
        )
        async with ControlPlaneClient(config) as client:
            with pytest.raises(TransportError, match="500") as exc_info:
                await client.api_for(get_kind("subnet")).get("sn-1")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    @respx.mock
    async def test_401_is_transport_error_not_missing(self, config: ApiConfig):
        respx.get(f"{API_URL}/v1/vpcs/vpc-1").mock(
            return_value=httpx.Response(401, text="unauthorized")
        )
        async with ControlPlaneClient(config) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.api_for(get_kind("vpc")).get("vpc-1")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_is_transport_error(self, config: ApiConfig):
        respx.get(f"{API_URL}/v1/vpcs/vpc-1").mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        async with ControlPlaneClient(config) as client:
            with pytest.raises(TransportError, match="connection refused") as exc_info:
                await client.api_for(get_kind("vpc")).get("vpc-1")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json_is_transport_error(self, config: ApiConfig):
        respx.get(f"{API_URL}/v1/vpcs/vpc-1").mock(
            return_value=httpx.Response(200, text="<html>gateway</html>")
        )
        async with ControlPlaneClient(config) as client:
            with pytest.raises(TransportError, match="invalid JSON"):
                await client.api_for(get_kind("vpc")).get("vpc-1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_posts_spec(self, config: ApiConfig):
        route = respx.post(f"{API_URL}/v1/machines").mock(
            return_value=httpx.Response(
                201,
                json={
                    "id": "vm-1",
                    "status": {"status": "provisioning", "statusMessage": "queued"},
                    "name": "web-1",
                },
            )
        )
        async with ControlPlaneClient(config) as client:
            result = await client.api_for(get_kind("machine")).create({"name": "web-1"})

        assert json.loads(route.calls.last.request.content) == {"name": "web-1"}
        assert result.identity == "vm-1"
        assert result.status == "provisioning"
        assert result.status_message == "queued"

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_204_falls_back_to_get(self, config: ApiConfig):
        put = respx.put(f"{API_URL}/v1/loadbalancers/lb-1").mock(
            return_value=httpx.Response(204)
        )
        respx.get(f"{API_URL}/v1/loadbalancers/lb-1").mock(
            return_value=httpx.Response(200, json={"id": "lb-1", "status": "updating"})
        )
        async with ControlPlaneClient(config) as client:
            result = await client.api_for(get_kind("loadbalancer")).update(
                "lb-1", {"size": "large"}
            )
        assert put.called
        assert result.status == "updating"

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete(self, config: ApiConfig):
        route = respx.delete(f"{API_URL}/v1/volumes/vol-1").mock(
            return_value=httpx.Response(204)
        )
        async with ControlPlaneClient(config) as client:
            await client.api_for(get_kind("block_volume")).delete("vol-1")
        assert route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_body_is_rejected(self, config: ApiConfig):
        respx.post(f"{API_URL}/v1/vpcs").mock(
            return_value=httpx.Response(200, json=["vpc-1"])
        )
        async with ControlPlaneClient(config) as client:
            with pytest.raises(TransportError, match="JSON object"):
                await client.api_for(get_kind("vpc")).create({})

    @pytest.mark.asyncio
    @respx.mock
    async def test_action_posts_to_sub_resource(self, config: ApiConfig):
        route = respx.post(f"{API_URL}/v1/volumes/vol-1/attach").mock(
            return_value=httpx.Response(200, json={"identity": "att-1"})
        )
        body = {"resourceType": "cloud_virtual_machine", "resourceIdentity": "vm-1"}
        async with ControlPlaneClient(config) as client:
            result = await client.api_for(get_kind("block_volume")).action(
                "vol-1", "attach", body
            )

        assert json.loads(route.calls.last.request.content) == body
        assert result == {"identity": "att-1"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_action_404_is_not_found(self, config: ApiConfig):
        respx.post(f"{API_URL}/v1/volumes/vol-1/detach").mock(
            return_value=httpx.Response(404)
        )
        async with ControlPlaneClient(config) as client:
            with pytest.raises(ResourceNotFoundError):
                await client.api_for(get_kind("block_volume")).action("vol-1", "detach")


class TestWaitUntilReachable:
    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_until_up(self, config: ApiConfig):
        route = respx.get(f"{API_URL}/").mock(
            side_effect=[
                httpx.ConnectError("refused"),
                httpx.Response(503),
                httpx.Response(200, json={}),
            ]
        )
        async with ControlPlaneClient(config) as client:
            await client.wait_until_reachable()
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_gives_up_after_max_attempts(self, config: ApiConfig):
        route = respx.get(f"{API_URL}/").mock(side_effect=httpx.ConnectError("refused"))
        async with ControlPlaneClient(config) as client:
            with pytest.raises(httpx.ConnectError):
                await client.wait_until_reachable()
        assert route.call_count == 3


class TestDriverOverHttp:
    @pytest.mark.asyncio
    @respx.mock
    async def test_create_and_delete_route_table(self, config: ApiConfig):
        respx.post(f"{API_URL}/v1/route-tables").mock(
            return_value=httpx.Response(201, json={"id": "rt-1", "status": "creating"})
        )
        respx.get(f"{API_URL}/v1/route-tables/rt-1").mock(
            side_effect=[
                httpx.Response(200, json={"id": "rt-1", "status": "creating"}),
                httpx.Response(502, text="bad gateway"),
                httpx.Response(200, json={"id": "rt-1", "status": "ready"}),
                httpx.Response(200, json={"id": "rt-1", "status": "deleting"}),
                httpx.Response(404),
            ]
        )
        delete = respx.delete(f"{API_URL}/v1/route-tables/rt-1").mock(
            return_value=httpx.Response(202)
        )
        policy = WaitPolicy(timeout_minutes=1, interval_seconds=0.01)

        async with ControlPlaneClient(config) as client:
            kind = get_kind("route_table")
            driver = LifecycleDriver(kind, client.api_for(kind))
            handle = await driver.create({"name": "main"}, policy)
            assert handle.snapshot.status == "ready"
            await driver.delete(handle, policy)

        assert delete.called
        assert not handle
