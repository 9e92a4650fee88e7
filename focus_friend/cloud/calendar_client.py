"""
Outlookカレンダー取得モジュール（Microsoft Graph HTTP API版）
"""
import logging
from datetime import datetime
from typing import Any, Dict, List

import httpx

from .. import config
from ..errors import ExternalCollaboratorError
from ..models import CalendarEvent

logger = logging.getLogger(__name__)

SELECT_FIELDS = (
    "id,subject,bodyPreview,start,end,location,importance,showAs,"
    "type,seriesMasterId,isAllDay,isCancelled"
)


def parse_graph_datetime(value: Dict[str, Any]) -> datetime:
    """Graphの dateTimeTimeZone を naive datetime に変換"""
    text = value["dateTime"]
    # 小数秒が7桁で返るので6桁に切り詰める
    if "." in text:
        head, frac = text.split(".", 1)
        text = f"{head}.{frac[:6]}"
    return datetime.fromisoformat(text.rstrip("Z"))


def parse_event(item: Dict[str, Any]) -> CalendarEvent:
    """予定1件を変換"""
    location = (item.get("location") or {}).get("displayName") or None
    return CalendarEvent(
        external_id=item["id"],
        subject=item.get("subject") or "",
        start=parse_graph_datetime(item["start"]),
        end=parse_graph_datetime(item["end"]),
        body_preview=item.get("bodyPreview") or "",
        location=location,
        importance=item.get("importance"),
        busy_status=item.get("showAs"),
        is_recurring=item.get("type", "singleInstance") != "singleInstance" or bool(item.get("seriesMasterId")),
        series_id=item.get("seriesMasterId"),
    )


class GraphCalendar:
    """Microsoft Graph の calendarView を取得するクラス"""

    def __init__(self, access_token: str, base_url: str = None, client: httpx.AsyncClient = None,
                 page_size: int = None):
        self.access_token = access_token
        self.base_url = (base_url or config.GRAPH_BASE_URL).rstrip("/")
        self.page_size = page_size or config.CALENDAR_PAGE_SIZE
        self._client = client

    def _get_headers(self, timezone: str) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Prefer": f'outlook.timezone="{timezone}"',
            "Accept": "application/json",
        }

    async def fetch_events(self, start: datetime, end: datetime, timezone: str = None) -> List[CalendarEvent]:
        """
        期間内の予定を取得（ページングを最後までたどる）

        キャンセル済み・終日の予定は除外する。再試行はしない。
        """
        timezone = timezone or config.CALENDAR_TIMEZONE
        url = f"{self.base_url}/me/calendarView"
        params = {
            "startDateTime": start.isoformat(),
            "endDateTime": end.isoformat(),
            "$select": SELECT_FIELDS,
            "$orderby": "start/dateTime",
            "$top": str(self.page_size),
        }
        headers = self._get_headers(timezone)

        if self._client is not None:
            items = await self._collect(self._client, url, params, headers)
        else:
            async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as client:
                items = await self._collect(client, url, params, headers)

        events = []
        for item in items:
            if item.get("isCancelled") or item.get("isAllDay"):
                continue
            try:
                events.append(parse_event(item))
            except (KeyError, TypeError, ValueError) as e:
                raise ExternalCollaboratorError("parse", f"Calendar returned a malformed event: {e}") from e

        logger.info("fetched %d calendar events (%d raw)", len(events), len(items))
        return events

    async def _collect(self, client: httpx.AsyncClient, url: str, params: dict, headers: dict) -> List[Dict]:
        items: List[Dict] = []
        next_url = url
        while next_url:
            try:
                response = await client.get(next_url, params=params, headers=headers,
                                            timeout=config.HTTP_TIMEOUT)
            except httpx.HTTPError as e:
                logger.warning("calendar request failed: %s", e)
                raise ExternalCollaboratorError("network", "Could not reach the calendar service.") from e

            if response.status_code in (401, 403):
                raise ExternalCollaboratorError(
                    "auth-expired", "Your calendar sign-in has expired. Please sign in again.",
                    response.status_code,
                )
            if response.status_code != 200:
                raise ExternalCollaboratorError(
                    "network", f"Calendar service error ({response.status_code}).", response.status_code,
                )

            try:
                data = response.json()
                items.extend(data["value"])
            except (ValueError, KeyError, TypeError) as e:
                raise ExternalCollaboratorError("parse", "Calendar returned an unreadable response.") from e

            # nextLink にはクエリが含まれている
            next_url = data.get("@odata.nextLink")
            params = None
        return items
