from __future__ import annotations

import json

import httpx
import pytest


def calendar_payload(days: list[tuple[str, object]]) -> dict:
    weeks = [days[i : i + 7] for i in range(0, len(days), 7)]
    return {
        "data": {
            "user": {
                "contributionsCollection": {
                    "contributionCalendar": {
                        "weeks": [
                            {"contributionDays": [{"date": d, "contributionCount": c} for d, c in week]}
                            for week in weeks
                        ],
                    },
                },
            },
        },
    }


class FakeGitHub:
    """Serves the years and calendar queries from canned per-year days."""

    def __init__(self, calendars: dict[int, list[tuple[str, object]]]) -> None:
        self.calendars = calendars
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        if "contributionYears" in body["query"]:
            years = list(self.calendars)
            return httpx.Response(
                200,
                json={"data": {"user": {"contributionsCollection": {"contributionYears": years}}}},
            )

        year = int(body["variables"]["from"][:4])
        return httpx.Response(200, json=calendar_payload(self.calendars[year]))

    @property
    def variables(self) -> list[dict]:
        return [json.loads(request.content)["variables"] for request in self.requests]


@pytest.fixture
def readme(tmp_path):
    path = tmp_path / "README.md"
    path.write_text(
        "# Hello\n\n<!-- GITHUB-STATS:START -->\nold stats\n<!-- GITHUB-STATS:END -->\n\nBye\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fake_github():
    return FakeGitHub


@pytest.fixture
def calendar():
    return calendar_payload
