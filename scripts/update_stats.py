"""Script to update README with GitHub contribution stats and streaks."""

from __future__ import annotations

import re
import sys
import json
import pathlib
import datetime
import dataclasses
import urllib.parse

import httpx
import loguru
import dynaconf


logger = loguru.logger

DEFAULT_LOGIN = "KamrulIbnZaman"
DEFAULT_README_PATH = "README.md"
START_MARKER = "<!-- GITHUB-STATS:START -->"
END_MARKER = "<!-- GITHUB-STATS:END -->"

BADGE_URL = "https://img.shields.io/badge"
BADGE_PARAMS = "style=for-the-badge&logo=github&labelColor=1c1c1c"

YEARS_QUERY = """
query($login: String!) {
  user(login: $login) {
    contributionsCollection {
      contributionYears
    }
  }
}
"""

CALENDAR_QUERY = """
query($login: String!, $from: DateTime!, $to: DateTime!) {
  user(login: $login) {
    contributionsCollection(from: $from, to: $to) {
      contributionCalendar {
        weeks {
          contributionDays {
            date
            contributionCount
          }
        }
      }
    }
  }
}
"""


class StatsError(Exception):
    """Base error for the stats updater; every subclass is fatal to the run."""


class ConfigError(StatsError):
    pass


class TransportError(StatsError):
    def __init__(self, status_code: int | None, reason: str, body: str) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"GitHub API request failed: {status_code} {reason} - {body}")


class ApiError(StatsError):
    def __init__(self, errors: object) -> None:
        self.errors = json.dumps(errors)
        super().__init__(f"GitHub API returned errors: {self.errors}")


class DataError(StatsError):
    pass


@dataclasses.dataclass(frozen=True)
class Settings:
    token: str
    login: str = DEFAULT_LOGIN
    readme_path: pathlib.Path = pathlib.Path(DEFAULT_README_PATH)
    start_marker: str = START_MARKER
    end_marker: str = END_MARKER


@dataclasses.dataclass(frozen=True)
class ContributionDay:
    date: datetime.date
    count: int


@dataclasses.dataclass(frozen=True)
class Stats:
    total: int
    longest_streak: int
    current_streak: int


def load_settings(config: dynaconf.Dynaconf | None = None, **overrides: object) -> Settings:
    """Build settings from ``CONFIG_*`` environment variables.

    Only the token comes from the environment; the rest can be overridden by callers.
    """
    config = config if config is not None else dynaconf.Dynaconf(envvar_prefix="CONFIG")
    token = config.get("GITHUB_TOKEN")
    if not token:
        msg = "CONFIG_GITHUB_TOKEN is required to call the GitHub GraphQL API"
        raise ConfigError(msg)

    return Settings(token=str(token), **overrides)


def create_client(token: str, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    return httpx.Client(
        base_url="https://api.github.com",
        headers={
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": "github-stats-updater",
        },
        timeout=30,
        transport=transport,
    )


def _serialize(value: object) -> object:
    if isinstance(value, datetime.datetime):
        return value.astimezone(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")

    if isinstance(value, datetime.date):
        return value.isoformat()

    return value


def graphql(client: httpx.Client, query: str, variables: dict | None = None) -> dict:
    payload = {key: _serialize(value) for key, value in (variables or {}).items()}
    try:
        response = client.post("/graphql", json={"query": query, "variables": payload})
    except httpx.HTTPError as exc:
        raise TransportError(None, type(exc).__name__, str(exc)) from exc

    if not response.is_success:
        raise TransportError(response.status_code, response.reason_phrase, response.text)

    try:
        body = response.json()
    except ValueError as exc:
        raise TransportError(response.status_code, response.reason_phrase, response.text) from exc

    if not isinstance(body, dict):
        msg = f"Unexpected GraphQL response: {body!r}"
        raise DataError(msg)

    if body.get("errors"):
        raise ApiError(body["errors"])

    if "data" not in body:
        msg = "GraphQL response has no data"
        raise DataError(msg)

    return body["data"]


def _contributions_collection(data: dict | None) -> dict:
    user = (data or {}).get("user") or {}
    return user.get("contributionsCollection") or {}


def fetch_contribution_years(client: httpx.Client, login: str) -> list[int]:
    data = graphql(client, YEARS_QUERY, {"login": login})
    years = _contributions_collection(data).get("contributionYears")
    if not isinstance(years, list) or not years:
        msg = f"No contribution years found for {login}"
        raise DataError(msg)

    try:
        return sorted(int(year) for year in years)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid contribution years: {years!r}"
        raise DataError(msg) from exc


def year_range(year: int, now: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the UTC window for ``year``; the in-progress year ends at ``now``."""
    now = now.astimezone(datetime.UTC)
    start = datetime.datetime(year, 1, 1, tzinfo=datetime.UTC)
    if year == now.year:
        return start, now

    return start, datetime.datetime(year, 12, 31, 23, 59, 59, tzinfo=datetime.UTC)


def fetch_contribution_calendar(
    client: httpx.Client,
    login: str,
    start: datetime.datetime,
    end: datetime.datetime,
) -> dict:
    data = graphql(client, CALENDAR_QUERY, {"login": login, "from": start, "to": end})
    calendar = _contributions_collection(data).get("contributionCalendar")
    if not isinstance(calendar, dict):
        msg = "Contribution calendar not found in the API response"
        raise DataError(msg)

    return calendar


def _coerce_count(value: object) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0

    return max(count, 0)


def flatten_calendar(calendar: dict) -> list[ContributionDay]:
    weeks = calendar.get("weeks")
    if not isinstance(weeks, list):
        msg = "Contribution calendar has no weeks"
        raise DataError(msg)

    days: list[ContributionDay] = []
    for week in weeks:
        contribution_days = (week or {}).get("contributionDays")
        if not isinstance(contribution_days, list):
            msg = "Contribution week has no days"
            raise DataError(msg)

        for day in contribution_days:
            try:
                date = datetime.date.fromisoformat(day["date"])
            except (KeyError, TypeError, ValueError) as exc:
                msg = f"Invalid contribution day: {day!r}"
                raise DataError(msg) from exc

            days.append(ContributionDay(date=date, count=_coerce_count(day.get("contributionCount"))))

    return days


def find_date_gaps(days: list[ContributionDay]) -> list[tuple[datetime.date, datetime.date]]:
    one_day = datetime.timedelta(days=1)
    return [
        (previous.date, current.date)
        for previous, current in zip(days, days[1:])
        if current.date - previous.date > one_day
    ]


def fetch_all_contribution_days(
    client: httpx.Client,
    login: str,
    now: datetime.datetime | None = None,
) -> list[ContributionDay]:
    now = now or datetime.datetime.now(datetime.UTC)
    today = now.astimezone(datetime.UTC).date()

    logger.info(f"Fetching contribution years for {login}...")
    years = fetch_contribution_years(client, login)
    logger.info(f"Contribution years: {', '.join(map(str, years))}")

    days: list[ContributionDay] = []
    for year in years:
        start, end = year_range(year, now)
        logger.info(f"Fetching {year} calendar...")
        calendar = fetch_contribution_calendar(client, login, start, end)
        days.extend(flatten_calendar(calendar))

    days = sorted((day for day in days if day.date <= today), key=lambda day: day.date)

    # Streaks are counted by position, so a gap would join two separate runs.
    for previous, current in find_date_gaps(days):
        logger.warning(f"Contribution calendar gap between {previous} and {current}")

    return days


def compute_stats(days: list[ContributionDay]) -> Stats:
    total = 0
    longest_streak = 0
    rolling = 0

    for day in days:
        total += day.count
        if day.count > 0:
            rolling += 1
            longest_streak = max(longest_streak, rolling)
        else:
            rolling = 0

    current_streak = 0
    for day in reversed(days):
        if day.count <= 0:
            break

        current_streak += 1

    return Stats(total=total, longest_streak=longest_streak, current_streak=current_streak)


def fmt(n: int) -> str:
    return f"{n:,}"


def fmt_days(n: int) -> str:
    return f"{fmt(n)} day" if n == 1 else f"{fmt(n)} days"


def badge(label: str, value: str, color: str, alt: str) -> str:
    label = urllib.parse.quote(label, safe="")
    value = urllib.parse.quote(value, safe="")
    return f'  <img src="{BADGE_URL}/{label}-{value}-{color}?{BADGE_PARAMS}" alt="{alt}" />'


def render_stats(stats: Stats, start_marker: str = START_MARKER, end_marker: str = END_MARKER) -> str:
    lines = [
        start_marker,
        '<p align="center">',
        badge("Total Commits", fmt(stats.total), "2ea44f", "Total commits badge"),
        badge("Longest Streak", fmt_days(stats.longest_streak), "1f6feb", "Longest streak badge"),
        badge("Current Streak", fmt_days(stats.current_streak), "bf4b8a", "Current streak badge"),
        "</p>",
        end_marker,
    ]
    return "\n".join(lines)


def replace_region(text: str, block: str, start_marker: str, end_marker: str) -> str:
    if start_marker not in text or end_marker not in text:
        msg = f"Missing required markers {start_marker} ... {end_marker}"
        raise ConfigError(msg)

    pattern = re.compile(re.escape(start_marker) + r".*?" + re.escape(end_marker), flags=re.DOTALL)
    if not pattern.search(text):
        msg = f"Marker {end_marker} must follow {start_marker}"
        raise ConfigError(msg)

    return pattern.sub(lambda _: block, text, count=1)


def inject_stats(
    path: str | pathlib.Path,
    block: str,
    start_marker: str = START_MARKER,
    end_marker: str = END_MARKER,
) -> None:
    readme = pathlib.Path(path)
    with readme.open(encoding="utf-8", newline="") as f:
        content = f.read()

    updated = replace_region(content, block, start_marker, end_marker)
    readme.write_text(updated, encoding="utf-8", newline="")


def update_readme(
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
    now: datetime.datetime | None = None,
) -> Stats:
    with create_client(settings.token, transport=transport) as client:
        days = fetch_all_contribution_days(client, settings.login, now=now)

    logger.info(f"Fetched {len(days)} contribution days")
    stats = compute_stats(days)
    block = render_stats(stats, settings.start_marker, settings.end_marker)
    inject_stats(settings.readme_path, block, settings.start_marker, settings.end_marker)
    logger.success(f"{settings.readme_path} updated successfully")
    return stats


def main() -> int:
    try:
        settings = load_settings()
        stats = update_readme(settings)
    except StatsError as exc:
        logger.error(str(exc))
        return 1

    print(
        f"Updated stats for {settings.login}: total={stats.total}, "
        f"longest={stats.longest_streak}, current={stats.current_streak}",
    )
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
