from deliveryline.transcript import agent_entry, to_timestamped_dump, tool_entry, user_entry


class TestEntryBuilders:
    def test_user_entry(self):
        entry = user_entry("I want to start delivery", "await_intent", timestamp=1000.0)
        assert entry == {
            "role": "user",
            "content": "I want to start delivery",
            "timestamp": 1000.0,
            "step": "await_intent",
        }

    def test_agent_entry_defaults_timestamp(self):
        entry = agent_entry("Hello.", "greeting")
        assert entry["role"] == "agent"
        assert entry["timestamp"] > 0

    def test_tool_entry(self):
        entry = tool_entry("resolve_intent", {"intent": "start"}, "await_intent", timestamp=1.0)
        assert entry["name"] == "resolve_intent"
        assert entry["result"] == {"intent": "start"}


class TestToTimestampedDump:
    def test_happy_path_multi_entry(self):
        log = [
            {"role": "agent", "content": "Hello.", "timestamp": 1000.0, "step": "await_intent"},
            {"role": "user", "content": "Stop my paper.", "timestamp": 1002.3, "step": "await_intent"},
            {"role": "tool", "name": "resolve_intent", "result": {"intent": "stop"}, "timestamp": 1005.2, "step": "await_intent"},
            {"role": "agent", "content": "What is your address?", "timestamp": 1008.9, "step": "await_address"},
        ]
        result = to_timestamped_dump(
            log, start_time=1000.0, call_sid="CA_test", phone="+15125551234",
            final_step="completed", duration_s=12,
        )
        assert result["call_sid"] == "CA_test"
        assert result["phone"] == "+15125551234"
        assert result["final_step"] == "completed"
        assert result["duration_s"] == 12
        assert [e["t"] for e in result["entries"]] == [0.0, 2.3, 5.2, 8.9]
        assert result["entries"][0]["step"] == "await_intent"
        assert result["entries"][2]["name"] == "resolve_intent"
        assert result["entries"][2]["result"] == {"intent": "stop"}

    def test_empty_log(self):
        result = to_timestamped_dump(
            [], start_time=1000.0, call_sid="CA_empty", phone="+1", final_step="ringing"
        )
        assert result["entries"] == []

    def test_start_time_zero_falls_back_to_first_entry(self):
        log = [
            {"role": "agent", "content": "Hello.", "timestamp": 5000.0, "step": "await_intent"},
            {"role": "user", "content": "Hi.", "timestamp": 5003.0, "step": "await_intent"},
        ]
        result = to_timestamped_dump(log, start_time=0.0, call_sid="CA", phone="+1", final_step="done")
        assert [e["t"] for e in result["entries"]] == [0.0, 3.0]

    def test_entry_missing_timestamp_is_skipped(self):
        log = [
            {"role": "agent", "content": "Hello.", "timestamp": 1000.0, "step": "await_intent"},
            {"role": "user", "content": "Oops no timestamp", "step": "await_intent"},
            {"role": "agent", "content": "Next.", "timestamp": 1002.0, "step": "await_address"},
        ]
        result = to_timestamped_dump(log, start_time=1000.0, call_sid="CA", phone="+1", final_step="done")
        assert [e["content"] for e in result["entries"]] == ["Hello.", "Next."]
