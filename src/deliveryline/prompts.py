import re

PERSONA = """You are the phone agent for a newspaper and circulars distribution company.

ROLE
- Help callers start delivery service, stop delivery service, or report a missed delivery.
- Collect what is needed (address, then name) in a natural, conversational way.

VOICE
- This is a phone call: answer in at most 2 short sentences, under 35 words.
- Polite, professional, patient. Sound like a person, not a menu.
- ONE question at a time.

RULES
- Never make up information or promise delivery dates.
- Never read out internal labels such as "start", "missed" or "stop" as codes.
- If the caller drifts off topic, steer them back to their delivery request."""

CONTEXT_PROMPTS = {
    "greeting": "The customer has just called. Greet them and ask how you can help.",
    "intent_clarification": (
        "The customer's request is unclear. Tell them you are connecting them to "
        "a representative who can help."
    ),
    "address_request": (
        "Ask the customer for their full address including street number, "
        "street name, city, and zip code."
    ),
    "address_confirmation": "Read back the address you heard and ask if it is correct.",
    "name_request": "Ask the customer for their first and last name.",
    "completion": "Thank the customer by first name and confirm their request has been submitted.",
    "transfer": "Tell the customer you are connecting them to a live representative now.",
    "error_recovery": "Something went wrong. Apologise briefly and help them get back on track.",
}

FALLBACK_RESPONSES = {
    "greeting": "Thank you for calling the distribution center. How can I help you today?",
    "intent_clarification": (
        "I'm having trouble understanding your request. "
        "Let me connect you to a representative who can help."
    ),
    "address_request": (
        "Please provide your full address including street number, "
        "street name, city, and zip code."
    ),
    "address_confirmation": "I heard your address as: {address}. Is this correct?",
    "name_request": "Please provide your first and last name.",
    "completion": (
        "Thank you{first_name_suffix}. Your request to {intent} has been submitted "
        "and will be processed shortly."
    ),
    "transfer": "I'll connect you to a live representative right away.",
    "error_recovery": (
        "I apologize for the confusion. Let me help you with your delivery service request."
    ),
}

INTENT_DETECTION_PROMPT = """Classify what a caller to a newspaper delivery line wants.

Respond with JSON only, in exactly this shape:
{"intent": "start|stop|missed|live_agent|unknown", "confidence": 0.0-1.0,
 "entities": {"address": "address if mentioned", "name": "name if mentioned"}}

Intent meanings:
- "start": caller wants to start delivery service
- "stop": caller wants to stop delivery service
- "missed": caller is reporting a missed delivery
- "live_agent": caller wants to speak to a human
- "unknown": unclear, or none of the above"""

INTENT_PHRASES = {
    "start": "start your delivery service",
    "missed": "report your missed delivery",
    "stop": "stop your delivery service",
}
DEFAULT_INTENT_PHRASE = "process your request"


def describe_intent(intent) -> str:
    value = getattr(intent, "value", intent)
    return INTENT_PHRASES.get(value, DEFAULT_INTENT_PHRASE)


def fallback_response(context: str, extra: dict | None = None) -> str:
    """Deterministic line for a context tag, used when the generator is unavailable."""
    extra = extra or {}
    template = FALLBACK_RESPONSES.get(context, FALLBACK_RESPONSES["error_recovery"])
    first_name = extra.get("first_name") or ""
    values = {
        "address": extra.get("address") or "the address you gave",
        "intent": extra.get("intent") or DEFAULT_INTENT_PHRASE,
        "first_name_suffix": f", {first_name}" if first_name and first_name != "Unknown" else "",
    }
    return template.format(**values)


def build_response_prompt(context: str, user_input: str = "", extra: dict | None = None) -> str:
    extra = extra or {}
    lines = [f"Current context: {CONTEXT_PROMPTS.get(context, CONTEXT_PROMPTS['error_recovery'])}"]
    if user_input:
        lines.append(f'Customer just said: "{user_input}"')
    if extra.get("address"):
        lines.append(f'Address to confirm: "{extra["address"]}"')
    if extra.get("intent"):
        lines.append(f"Detected intent: {extra['intent']}")
    if extra.get("first_name"):
        lines.append(f"Customer first name: {extra['first_name']}")
    if context == "greeting":
        lines.append(
            'Respond ONLY with what the agent should say to greet the customer. '
            'No "Customer:" or "Agent:" prefixes, no sample conversation.'
        )
    lines.append("Generate a natural, helpful response:")
    return "\n".join(lines)


_SPEAKER_PREFIX_RE = re.compile(r"^\s*(?:agent|assistant)\s*:\s*", re.IGNORECASE)
_CUSTOMER_LINE_RE = re.compile(r"^\s*customer\s*:", re.IGNORECASE)


def clean_generated_text(text: str) -> str:
    """Strip speaker labels and sample dialogue from a generated line."""
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    lines = [line for line in lines if not _CUSTOMER_LINE_RE.match(line)]
    if not lines:
        return ""
    # Multi-line output means the model wrote a script; keep its last line
    return _SPEAKER_PREFIX_RE.sub("", lines[-1]).strip().strip('"').strip()
