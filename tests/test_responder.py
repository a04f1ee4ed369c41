from unittest.mock import AsyncMock

import pytest

from deliveryline.prompts import FALLBACK_RESPONSES
from deliveryline.responder import ResponseGenerator
from deliveryline.tiers import CollaboratorError


@pytest.mark.asyncio
async def test_generated_text_is_used():
    generator = AsyncMock()
    generator.generate_response.return_value = "Hi! How can I help with your paper today?"
    responder = ResponseGenerator(generator)
    text = await responder.render("greeting")
    assert text == "Hi! How can I help with your paper today?"
    generator.generate_response.assert_awaited_once_with("greeting", "", {})


@pytest.mark.asyncio
async def test_generator_failure_uses_fallback_line():
    generator = AsyncMock()
    generator.generate_response.side_effect = CollaboratorError("down")
    responder = ResponseGenerator(generator)
    text = await responder.render("address_confirmation", "123 Main", {"address": "123 Main"})
    assert text == "I heard your address as: 123 Main. Is this correct?"


@pytest.mark.asyncio
async def test_blank_generation_uses_fallback_line():
    generator = AsyncMock()
    generator.generate_response.return_value = "   "
    responder = ResponseGenerator(generator)
    assert await responder.render("name_request") == FALLBACK_RESPONSES["name_request"]


@pytest.mark.asyncio
async def test_no_generator():
    assert await ResponseGenerator().render("greeting") == FALLBACK_RESPONSES["greeting"]
