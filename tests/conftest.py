import json
import os
import sys
from collections import deque

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.settings import settings
from services.rfp_desk import init_schemas


class ScriptedClient:
    """Chat client double returning queued replies; exceptions are raised."""

    def __init__(self, replies=()):
        self._replies = deque(replies)
        self.calls = []

    def queue(self, *replies):
        self._replies.extend(replies)

    def complete(self, system_instruction, user_prompt):
        self.calls.append((system_instruction, user_prompt))
        if not self._replies:
            raise AssertionError("unexpected extraction call")
        reply = self._replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    for name in ("PGHOST", "PGDATABASE", "PGUSER", "PGPASSWORD", "PGPORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings, "db_host", None)
    path = tmp_path / "rfp_desk.sqlite"
    monkeypatch.setenv("SQLITE_PATH", str(path))
    init_schemas()
    return path


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


def parsed_proposal_payload(confidence=0.9, total=1500.0):
    return {
        "line_items": [
            {"item_name": "Laptop", "unit_price": 1000.0, "quantity": 1, "total_price": 1000.0},
            {"item_name": "Monitor", "unit_price": 250.0, "quantity": 2, "total_price": 500.0},
        ],
        "total_price": total,
        "delivery_timeline": "30 days",
        "payment_terms": "Net 30",
        "warranty_terms": "1 year",
        "special_conditions": ["Free shipping"],
        "confidence": confidence,
    }


def structured_terms_payload(title="Office laptops"):
    return {
        "title": title,
        "items": [
            {
                "name": "Laptop",
                "description": "Business laptop",
                "quantity": 20,
                "specifications": {"ram": "16GB"},
            }
        ],
        "budget": 50000,
        "delivery_timeline": "within 30 days",
        "payment_terms": "Net 30",
        "warranty_requirements": "1 year minimum",
        "special_conditions": ["On-site installation"],
    }
