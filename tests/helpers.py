"""Shared helpers for Contact Card tests."""
import json
from typing import Optional


def message_payload(text: str) -> dict:
    """Provider-shaped message response carrying one text block."""
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": text}],
    }


def extraction_payload(contacts: list[dict]) -> dict:
    """Provider-shaped response for a structured extraction."""
    return message_payload(json.dumps({"contacts": contacts}))


class FakeRelay:
    """
    Stand-in for RelayClient.

    Returns queued payloads in order (or raises queued exceptions) and
    records every call.
    """

    def __init__(self, *responses, own_key: bool = False):
        self.responses = list(responses)
        self.calls: list[dict] = []
        self.own_key = own_key

    def uses_own_key(self) -> bool:
        return self.own_key

    async def send(self, messages, output_schema: Optional[dict] = None, mode=None, api_key=None, model=None) -> dict:
        self.calls.append({"messages": messages, "output_schema": output_schema})
        if not self.responses:
            raise AssertionError("FakeRelay has no queued response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["messages"][0]["content"]
