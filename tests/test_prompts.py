from deliveryline.prompts import (
    CONTEXT_PROMPTS,
    FALLBACK_RESPONSES,
    build_response_prompt,
    clean_generated_text,
    describe_intent,
    fallback_response,
)
from deliveryline.states import Intent


def test_every_context_has_a_fallback_line():
    assert set(CONTEXT_PROMPTS) == set(FALLBACK_RESPONSES)


def test_prompts_never_contain_transition_word():
    for context, prompt in CONTEXT_PROMPTS.items():
        assert "transition" not in prompt.lower(), f"Prompt for {context} contains 'transition'"


class TestFallbackResponse:
    def test_address_confirmation_reads_back_address(self):
        text = fallback_response("address_confirmation", {"address": "123 Main Street"})
        assert text == "I heard your address as: 123 Main Street. Is this correct?"

    def test_completion_with_first_name(self):
        text = fallback_response(
            "completion", {"first_name": "Jane", "intent": "start your delivery service"}
        )
        assert text == (
            "Thank you, Jane. Your request to start your delivery service "
            "has been submitted and will be processed shortly."
        )

    def test_completion_without_known_name(self):
        text = fallback_response("completion", {"first_name": "Unknown"})
        assert text.startswith("Thank you. Your request to process your request")

    def test_unknown_context_uses_error_recovery(self):
        assert fallback_response("nonsense") == FALLBACK_RESPONSES["error_recovery"]


class TestDescribeIntent:
    def test_service_intents(self):
        assert describe_intent(Intent.START) == "start your delivery service"
        assert describe_intent(Intent.MISSED) == "report your missed delivery"
        assert describe_intent("stop") == "stop your delivery service"

    def test_other_intents(self):
        assert describe_intent(Intent.LIVE_AGENT) == "process your request"
        assert describe_intent(None) == "process your request"


def test_response_prompt_includes_context_and_caller_words():
    prompt = build_response_prompt("address_confirmation", "123 Main", {"address": "123 Main"})
    assert CONTEXT_PROMPTS["address_confirmation"] in prompt
    assert 'Customer just said: "123 Main"' in prompt
    assert 'Address to confirm: "123 Main"' in prompt


class TestCleanGeneratedText:
    def test_plain_line(self):
        assert clean_generated_text("How can I help?") == "How can I help?"

    def test_strips_agent_prefix_and_quotes(self):
        assert clean_generated_text('Agent: "How can I help?"') == "How can I help?"

    def test_drops_sample_dialogue(self):
        text = "Agent: Hi!\nCustomer: I need help\nAgent: Sure, what is your address?"
        assert clean_generated_text(text) == "Sure, what is your address?"

    def test_empty(self):
        assert clean_generated_text("") == ""
        assert clean_generated_text("Customer: hello") == ""
