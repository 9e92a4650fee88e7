import asyncio
from datetime import datetime

import httpx
import pytest

from focus_friend.cloud.calendar_client import GraphCalendar, parse_graph_datetime
from focus_friend.errors import ExternalCollaboratorError

START = datetime(2024, 5, 12)
END = datetime(2024, 5, 19)


def graph_event(event_id, subject="Maths", day=13, **extra):
    item = {
        "id": event_id,
        "subject": subject,
        "bodyPreview": "",
        "start": {"dateTime": f"2024-05-{day:02d}T09:00:00.0000000", "timeZone": "UTC"},
        "end": {"dateTime": f"2024-05-{day:02d}T10:00:00.0000000", "timeZone": "UTC"},
        "type": "singleInstance",
    }
    item.update(extra)
    return item


def make_calendar(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GraphCalendar("graph-token", base_url="https://graph.test/v1.0", client=client, page_size=2)


def fetch(calendar):
    return asyncio.run(calendar.fetch_events(START, END, "Europe/London"))


def test_parse_graph_datetime_truncates_fraction():
    value = {"dateTime": "2024-05-13T09:00:00.1234567", "timeZone": "UTC"}
    assert parse_graph_datetime(value) == datetime(2024, 5, 13, 9, 0, 0, 123456)


def test_follows_next_link_until_exhausted():
    requests = []

    def handler(request):
        requests.append(request)
        if "skip" in str(request.url):
            return httpx.Response(200, json={"value": [graph_event("c", day=15)]})
        return httpx.Response(200, json={
            "value": [graph_event("a"), graph_event("b", day=14)],
            "@odata.nextLink": "https://graph.test/v1.0/me/calendarView?skip=2",
        })

    events = fetch(make_calendar(handler))

    assert [e.external_id for e in events] == ["a", "b", "c"]
    assert len(requests) == 2
    first = requests[0]
    assert first.headers["Authorization"] == "Bearer graph-token"
    assert first.headers["Prefer"] == 'outlook.timezone="Europe/London"'
    assert first.url.params["$top"] == "2"
    assert "startDateTime" not in requests[1].url.params


def test_cancelled_and_all_day_events_are_dropped():
    def handler(request):
        return httpx.Response(200, json={"value": [
            graph_event("keep", seriesMasterId="s1", type="occurrence"),
            graph_event("cancelled", isCancelled=True),
            graph_event("all-day", isAllDay=True),
        ]})

    events = fetch(make_calendar(handler))

    assert [e.external_id for e in events] == ["keep"]
    assert events[0].is_recurring
    assert events[0].series_id == "s1"
    assert events[0].start == datetime(2024, 5, 13, 9, 0)


@pytest.mark.parametrize("status", [401, 403])
def test_expired_token(status):
    calendar = make_calendar(lambda r: httpx.Response(status, json={"error": {}}))
    with pytest.raises(ExternalCollaboratorError) as exc:
        fetch(calendar)
    assert exc.value.reason == "auth-expired"


def test_server_error_is_network():
    calendar = make_calendar(lambda r: httpx.Response(503))
    with pytest.raises(ExternalCollaboratorError) as exc:
        fetch(calendar)
    assert exc.value.reason == "network"


def test_unreadable_body_is_parse_error():
    calendar = make_calendar(lambda r: httpx.Response(200, content=b"<html>"))
    with pytest.raises(ExternalCollaboratorError) as exc:
        fetch(calendar)
    assert exc.value.reason == "parse"


def test_malformed_event_is_parse_error():
    calendar = make_calendar(lambda r: httpx.Response(200, json={"value": [{"id": "x"}]}))
    with pytest.raises(ExternalCollaboratorError) as exc:
        fetch(calendar)
    assert exc.value.reason == "parse"
