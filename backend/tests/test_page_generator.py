"""Tests for the Anthropic and offline page generators."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from backend.config import Settings
from backend.services.page_generator import (
    SYSTEM_PROMPT,
    AnthropicPageGenerator,
    TemplatePageGenerator,
    build_page_prompt,
    create_page_generator,
    extract_document,
)
from engine.kernel.synthesizer import PageGenerationError
from engine.kernel.types import PageSpec


def spec(**kwargs) -> PageSpec:
    kwargs.setdefault("page_key", "checkout")
    kwargs.setdefault("role", "checkout")
    return PageSpec(**kwargs)


class TestPrompt:
    def test_prompt_includes_role_label_and_style(self):
        prompt = build_page_prompt(
            spec(nav_label="Proceed to Checkout", style_excerpt=".btn{color:teal}", source_intent="cart.checkout")
        )
        assert "Role: checkout" in prompt
        assert "order summary" in prompt
        assert "'Proceed to Checkout'" in prompt
        assert ".btn{color:teal}" in prompt
        assert "cart.checkout" in prompt

    def test_prompt_omits_empty_parts(self):
        prompt = build_page_prompt(spec(page_key="about", role="generic"))
        assert "The visitor clicked" not in prompt
        assert "<style>" not in prompt


class TestExtractDocument:
    def test_strips_fences(self):
        assert extract_document("```html\n<!DOCTYPE html><html></html>\n```") == "<!DOCTYPE html><html></html>"

    def test_strips_leading_chatter(self):
        assert extract_document("Here you go:\n<!doctype html><p>x</p>") == "<!doctype html><p>x</p>"

    def test_plain_markup_unchanged(self):
        assert extract_document("  <main>x</main> ") == "<main>x</main>"


class TestAnthropicPageGenerator:
    @pytest.mark.asyncio
    async def test_generate_calls_model(self):
        client = MagicMock()
        client.complete = AsyncMock(return_value="```html\n<!DOCTYPE html><html><body>Pay</body></html>\n```")
        client.get_usage_stats = AsyncMock(return_value={"input_tokens": 900, "output_tokens": 1200})
        generator = AnthropicPageGenerator(client, model="test-model", max_tokens=1000)

        page = await generator.generate(spec(nav_label="Checkout"))

        assert page == "<!DOCTYPE html><html><body>Pay</body></html>"
        args, kwargs = client.complete.call_args
        assert args[1] == SYSTEM_PROMPT
        assert "Role: checkout" in args[0][0]["content"]
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 1000
        assert kwargs["cache_system"] is True
        client.get_usage_stats.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_usage_is_tolerated(self):
        client = MagicMock()
        client.complete = AsyncMock(return_value="<main>Contact</main>")
        client.get_usage_stats = AsyncMock(return_value=None)
        generator = AnthropicPageGenerator(client, model="test-model")

        assert await generator.generate(spec(role="contact")) == "<main>Contact</main>"

    @pytest.mark.asyncio
    async def test_api_error_becomes_generation_error(self):
        client = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.complete = AsyncMock(side_effect=anthropic.APIConnectionError(request=request))
        generator = AnthropicPageGenerator(client, model="test-model")

        with pytest.raises(PageGenerationError):
            await generator.generate(spec())

    @pytest.mark.asyncio
    async def test_no_markup_is_an_error(self):
        client = MagicMock()
        client.complete = AsyncMock(return_value="Sorry, I can't help with that.")
        generator = AnthropicPageGenerator(client, model="test-model")

        with pytest.raises(PageGenerationError, match="no markup"):
            await generator.generate(spec())


class TestTemplatePageGenerator:
    @pytest.mark.asyncio
    async def test_renders_role_template(self):
        generator = TemplatePageGenerator()
        page = await generator.generate(spec(page_key="view-cart", role="cart", style_excerpt=".x{}"))

        assert page.startswith("<!DOCTYPE html>")
        assert 'data-page="view-cart"' in page
        assert "<h1>View Cart</h1>" in page
        assert "Proceed to Checkout" in page
        assert ".x{}" in page
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_escapes_label(self):
        page = await TemplatePageGenerator().generate(spec(nav_label="<script>x</script>", role="generic"))
        assert "<script>x</script>" not in page
        assert "&lt;script&gt;" in page


class TestFactory:
    def test_template_generator_when_testing(self):
        settings = Settings()
        settings.TESTING = True
        assert isinstance(create_page_generator(settings), TemplatePageGenerator)

    def test_anthropic_generator_with_key(self):
        settings = Settings()
        settings.TESTING = False
        settings.USE_TEMPLATE_GENERATOR = False
        settings.ANTHROPIC_API_KEY = "sk-test"
        settings.PAGE_MODEL = "test-model"
        generator = create_page_generator(settings)
        assert isinstance(generator, AnthropicPageGenerator)
        assert generator.model == "test-model"
