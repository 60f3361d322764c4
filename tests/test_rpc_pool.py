import httpx
import pytest

from config.settings import RPCConfig
from core.errors import AllEndpointsFailedError, NoEndpointsError, RPCError
from services.blockchain.rpc_client import RPCClient
from services.blockchain.rpc_pool import RPCPool

from conftest import GARBAGE_RPC, RPC_A, RPC_B


class TestProviderSelection:

    @pytest.mark.asyncio
    async def test_first_live_endpoint_wins(self, pool, node):
        client = await pool.get_provider(1)
        assert client.url == RPC_A
        assert node.count("eth_blockNumber", "rpc-b.test") == 0

    @pytest.mark.asyncio
    async def test_falls_through_dead_endpoint(self, pool, node):
        node.failing_hosts.add("rpc-a.test")
        client = await pool.get_provider(1)
        assert client.url == RPC_B
        assert await client.get_block_number() == node.latest

    @pytest.mark.asyncio
    async def test_all_endpoints_failed_lists_each_in_probe_order(self, pool, node):
        node.failing_hosts.update({"rpc-a.test", "rpc-b.test"})

        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await pool.get_provider(1)

        error = exc_info.value
        assert len(error.errors) == 2
        assert [e.url for e in error.errors] == [RPC_A, RPC_B]
        assert [e["url"] for e in error.to_dict()["details"]["endpoints"]] == [RPC_A, RPC_B]

    @pytest.mark.asyncio
    async def test_non_quantity_block_number_falls_through(self, pool, node):
        node.host_results["garbage.test"] = "not-a-quantity"

        client = await pool.get_provider(5)

        assert client.url == RPC_B
        assert pool.get_stats()["probe_failures"] == 1

    @pytest.mark.asyncio
    async def test_single_garbage_endpoint_reports_failure(self, pool, node):
        node.host_results["garbage.test"] = {"block": "latest"}

        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await pool.get_provider(7)

        errors = exc_info.value.errors
        assert [e.url for e in errors] == [GARBAGE_RPC]
        assert "malformed result" in errors[0].reason

    @pytest.mark.asyncio
    async def test_malformed_endpoint_url_falls_through(self, pool, node):
        client = await pool.get_provider(6)

        assert client.url == RPC_B
        assert node.count("eth_blockNumber", "bad.test") == 0
        assert pool.get_stats()["probe_failures"] == 1

    @pytest.mark.asyncio
    async def test_chain_without_usable_endpoints(self, pool):
        with pytest.raises(NoEndpointsError):
            await pool.get_provider(777)

    @pytest.mark.asyncio
    async def test_slow_endpoint_times_out(self, registry, node, clock):
        node.host_delays["rpc-a.test"] = 0.5
        config = RPCConfig(probe_timeout_seconds=0.05, request_timeout_seconds=2.0)
        async with RPCPool(registry, config, transport=httpx.MockTransport(node.handler), clock=clock) as pool:
            client = await pool.get_provider(1)
            stats = pool.get_stats()
        assert client.url == RPC_B
        assert stats["probe_failures"] == 1


class TestKnownGoodCache:

    @pytest.mark.asyncio
    async def test_every_lookup_reprobes_by_default(self, pool, node):
        await pool.get_provider(1)
        await pool.get_provider(1)
        assert node.count("eth_blockNumber") == 2

    @pytest.mark.asyncio
    async def test_known_good_endpoint_is_reused_until_expiry(self, registry, node, clock):
        config = RPCConfig(probe_timeout_seconds=1.0, request_timeout_seconds=2.0, known_good_ttl_seconds=60)
        async with RPCPool(registry, config, transport=httpx.MockTransport(node.handler), clock=clock) as pool:
            node.failing_hosts.add("rpc-a.test")
            first = await pool.get_provider(1)
            probes = node.count("eth_blockNumber")

            second = await pool.get_provider(1)
            assert second.url == first.url == RPC_B
            assert node.count("eth_blockNumber") == probes

            clock.advance(61)
            await pool.get_provider(1)
            assert node.count("eth_blockNumber") > probes
            assert pool.get_stats()["known_good_hits"] == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_reprobe(self, registry, node, clock):
        config = RPCConfig(probe_timeout_seconds=1.0, request_timeout_seconds=2.0, known_good_ttl_seconds=60)
        async with RPCPool(registry, config, transport=httpx.MockTransport(node.handler), clock=clock) as pool:
            await pool.get_provider(1)
            pool.invalidate(1)
            await pool.get_provider(1)
        assert node.count("eth_blockNumber") == 2


class TestRPCClient:

    @pytest.mark.asyncio
    async def test_json_rpc_error_is_raised(self, node, rpc_config):
        async with httpx.AsyncClient(transport=httpx.MockTransport(node.handler)) as http_client:
            client = RPCClient(RPC_A, http_client=http_client, config=rpc_config)
            with pytest.raises(RPCError) as exc_info:
                await client.call("0x" + "9" * 40, "0x06fdde03")
        assert exc_info.value.code == -32000
        assert client.get_stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_rate_limited_request_is_retried(self, rpc_config):
        responses = [httpx.Response(429), httpx.Response(200, json={"jsonrpc": "2.0", "id": 2, "result": "0x5"})]
        transport = httpx.MockTransport(lambda request: responses.pop(0))
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = RPCClient(RPC_A, http_client=http_client, config=rpc_config)
            result = await client.request("eth_chainId", [])
        assert result == "0x5"

    @pytest.mark.asyncio
    async def test_missing_transaction_is_none(self, node, rpc_config):
        async with httpx.AsyncClient(transport=httpx.MockTransport(node.handler)) as http_client:
            client = RPCClient(RPC_A, http_client=http_client, config=rpc_config)
            assert await client.get_transaction("0x" + "0" * 64) is None
