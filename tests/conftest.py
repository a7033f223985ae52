"""Shared fixtures: fake HTTP transports, sheet payloads and images."""

import io
import json

import httpx
import pytest
from PIL import Image

GVIZ_PREFIX = "/*O_o*/\ngoogle.visualization.Query.setResponse("
GVIZ_SUFFIX = ");"


def gviz_body(rows):
    """Wrap rows of plain values the way the gviz endpoint does."""
    table_rows = []
    for row in rows:
        if row is None:
            table_rows.append({"c": None})
            continue
        cells = []
        for cell in row:
            if cell is None or isinstance(cell, dict):
                cells.append(cell)
            else:
                cells.append({"v": cell})
        table_rows.append({"c": cells})
    payload = {"version": "0.6", "status": "ok", "table": {"cols": [], "rows": table_rows}}
    return GVIZ_PREFIX + json.dumps(payload, ensure_ascii=False) + GVIZ_SUFFIX


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def sample_rows():
    return [
        ["r1", None, {"v": "Date(2024,0,10)", "f": "2024-01-10"}, "O", "식대", "맥도날드",
         12000, "법인카드", "팀 점심", None, None],
        ["r2", None, "2024-01-11", "X", "주차료", "강남주차장", 3000, "개인카드", None, None, None],
        ["r3", None, "2024-01-12", None, "식대", "김밥천국", 8000.0, "법인카드", None, None, None],
    ]
