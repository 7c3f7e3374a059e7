"""Tests for embedding providers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from doubletab.config import EmbeddingConfig
from doubletab.embeddings.base import EmbeddingProvider
from doubletab.embeddings.compat import CompatProvider
from doubletab.embeddings.factory import createProvider
from doubletab.embeddings.ollama import OllamaProvider

# -- Protocol conformance --


class TestEmbeddingProtocol:
    def test_fakeEmbedderConforms(self, fake_embedder):
        assert isinstance(fake_embedder, EmbeddingProvider)

    def test_ollamaConforms(self):
        p = OllamaProvider()
        assert isinstance(p, EmbeddingProvider)

    def test_compatConforms(self):
        p = CompatProvider(model="test-model", api_key="test-key")
        assert isinstance(p, EmbeddingProvider)


# -- OllamaProvider --


class TestOllamaProvider:
    def test_properties(self):
        p = OllamaProvider(model="test-model", dimensions=512, url="http://localhost:11434")
        assert p.name == "ollama/test-model"
        assert p.dimensions == 512

    @pytest.mark.asyncio
    async def test_embed(self):
        p = OllamaProvider(model="nomic-embed-text", dimensions=3)
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"embeddings": [[0.1, 0.2, 0.3]]}
        mock_resp.raise_for_status = MagicMock()
        p._client = AsyncMock()
        p._client.post = AsyncMock(return_value=mock_resp)

        result = await p.embed(["hello"])
        assert result == [[0.1, 0.2, 0.3]]
        p._client.post.assert_called_once_with(
            "/api/embed", json={"model": "nomic-embed-text", "input": ["hello"]}
        )

    @pytest.mark.asyncio
    async def test_healthCheckPass(self):
        p = OllamaProvider(model="nomic-embed-text")
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"models": [{"name": "nomic-embed-text:latest"}]}
        mock_resp.raise_for_status = MagicMock()
        p._client = AsyncMock()
        p._client.get = AsyncMock(return_value=mock_resp)

        assert await p.healthCheck() is True

    @pytest.mark.asyncio
    async def test_healthCheckFail(self):
        p = OllamaProvider(model="nomic-embed-text")
        p._client = AsyncMock()
        p._client.get = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))

        assert await p.healthCheck() is False

    @pytest.mark.asyncio
    async def test_healthCheckMissingModel(self):
        p = OllamaProvider(model="nomic-embed-text")
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"models": [{"name": "nomic-embed-text-v2:latest"}]}
        mock_resp.raise_for_status = MagicMock()
        p._client = AsyncMock()
        p._client.get = AsyncMock(return_value=mock_resp)

        assert await p.healthCheck() is False


# -- CompatProvider --


class TestCompatProvider:
    def test_properties(self):
        p = CompatProvider(model="text-embedding-ada-002", api_key="key", dimensions=1536)
        assert p.name == "compat/text-embedding-ada-002"
        assert p.dimensions == 1536

    def test_requiresApiKey(self):
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValueError, match="API key required"),
        ):
            CompatProvider(model="test-model", api_key=None)

    def test_apiKeyFromEnvironment(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-env"}, clear=True):
            p = CompatProvider(model="test-model")
        assert p._client.headers["Authorization"] == "Bearer sk-env"

    @pytest.mark.asyncio
    async def test_embed(self):
        p = CompatProvider(model="text-embedding-ada-002", api_key="key", dimensions=2)
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"data": [{"embedding": [0.1, 0.2], "index": 0}]}
        mock_resp.raise_for_status = MagicMock()
        p._client = AsyncMock()
        p._client.post = AsyncMock(return_value=mock_resp)

        result = await p.embedOne("hello")
        assert result == [0.1, 0.2]
        p._client.post.assert_called_once_with(
            "/embeddings",
            json={"model": "text-embedding-ada-002", "input": ["hello"], "encoding_format": "float"},
        )

    @pytest.mark.asyncio
    async def test_embedOrderPreserved(self):
        p = CompatProvider(model="test-model", api_key="key", dimensions=2)
        mock_resp = MagicMock()
        # Return out-of-order indexes
        mock_resp.json.return_value = {
            "data": [
                {"embedding": [0.3, 0.4], "index": 1},
                {"embedding": [0.1, 0.2], "index": 0},
            ]
        }
        mock_resp.raise_for_status = MagicMock()
        p._client = AsyncMock()
        p._client.post = AsyncMock(return_value=mock_resp)

        result = await p.embed(["first", "second"])
        assert result == [[0.1, 0.2], [0.3, 0.4]]

    @pytest.mark.asyncio
    async def test_httpErrorPropagates(self):
        p = CompatProvider(model="test-model", api_key="key")
        p._client = AsyncMock()
        p._client.post = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))
        with pytest.raises(httpx.ConnectError):
            await p.embedOne("x")

    @pytest.mark.asyncio
    async def test_wrongDimensionsRejected(self):
        p = CompatProvider(model="test-model", api_key="key", dimensions=4)
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"data": [{"embedding": [0.1, 0.2], "index": 0}]}
        mock_resp.raise_for_status = MagicMock()
        p._client = AsyncMock()
        p._client.post = AsyncMock(return_value=mock_resp)

        with pytest.raises(ValueError, match="2-dim vectors, configured for 4"):
            await p.embedOne("x")

    @pytest.mark.asyncio
    async def test_emptyBatchSkipsRequest(self):
        p = CompatProvider(model="test-model", api_key="key")
        p._client = AsyncMock()
        assert await p.embed([]) == []
        p._client.post.assert_not_called()


# -- Factory --


class TestFactory:
    @pytest.mark.asyncio
    async def test_createOllamaProvider(self):
        config = EmbeddingConfig(provider="ollama")
        with patch("doubletab.embeddings.factory._tryOllama") as mock:
            mock.return_value = MagicMock(spec=EmbeddingProvider)
            result = await createProvider(config)
            mock.assert_called_once_with(config)
            assert result is mock.return_value

    @pytest.mark.asyncio
    async def test_createCompatProvider(self):
        config = EmbeddingConfig(provider="compat", api_key="test-key")
        with patch("doubletab.embeddings.factory._createCompat") as mock:
            mock.return_value = MagicMock(spec=EmbeddingProvider)
            result = await createProvider(config)
            mock.assert_called_once_with(config)
            assert result is mock.return_value

    @pytest.mark.asyncio
    async def test_compatUsesConfig(self):
        config = EmbeddingConfig(api_key="k", model="m", dimensions=8, api_url="http://gw/v1/")
        p = await createProvider(config)
        try:
            assert p.name == "compat/m"
            assert p.dimensions == 8
        finally:
            await p.close()

    @pytest.mark.asyncio
    async def test_unknownProvider(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            await createProvider(EmbeddingConfig(provider="local"))

    @pytest.mark.asyncio
    async def test_ollamaUnreachable(self):
        config = EmbeddingConfig(provider="ollama", model="nomic-embed-text")
        with (
            patch.object(OllamaProvider, "healthCheck", AsyncMock(return_value=False)),
            pytest.raises(ConnectionError, match="Ollama not reachable"),
        ):
            await createProvider(config)
