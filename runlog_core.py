"""
runlog_core
-----------
러닝 일지 코어: 날짜/주간 계산, 페이스 계산, 계획·기록 레지스트리, 대시보드 집계.

주요 특징:
- 로컬 날짜 기준 YYYY-MM-DD day-string (UTC 변환 없음)
- 월요일 시작 7일 주간 윈도우
- 입력값은 레지스트리 경계에서 한 번만 숫자로 변환 (잘못된 값은 0)
- 모든 변경은 즉시 저장소에 기록 (write-through)
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from runlog_store import KeyValueStore

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]

LOGS_KEY = "runningLogs"
PLANS_KEY = "runningPlans"

PACE_SENTINEL = "0'00\""
DEFAULT_RPE = 5
WEEKDAY_KR = ["월", "화", "수", "목", "금", "토", "일"]


# -----------------------------
# 숫자 변환
# -----------------------------


def parse_non_negative_number_or_zero(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def parse_optional_non_negative(value: Any) -> Optional[float]:
    """빈 입력은 None, 그 외는 0 이상의 숫자로 변환한다."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_non_negative_number_or_zero(value)


def parse_whole_number_or_zero(value: Any) -> int:
    return int(parse_non_negative_number_or_zero(value))


def parse_rpe(value: Any) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_RPE
    try:
        rpe = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_RPE
    return min(max(rpe, 1), 10)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# -----------------------------
# 날짜 / 주간
# -----------------------------


def to_day_string(d: Union[date, datetime]) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_day(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError as err:
            raise ValueError(f"Invalid day string: {value!r}") from err
    raise ValueError(f"Unsupported date value: {value!r}")


def iso_weekday(d: date) -> int:
    # Monday=1 .. Sunday=7
    return d.isoweekday()


def week_start(d: DateLike) -> date:
    day = parse_day(d)
    return day - timedelta(days=iso_weekday(day) - 1)


def week_window(d: DateLike) -> List[str]:
    monday = week_start(d)
    return [to_day_string(monday + timedelta(days=offset)) for offset in range(7)]


def week_of_month(d: DateLike) -> Tuple[int, int]:
    day = parse_day(d)
    week_num = math.ceil((day.day + 6 - iso_weekday(day)) / 7)
    return day.month, week_num


def week_of_month_label(d: DateLike) -> str:
    month, week_num = week_of_month(d)
    return f"{month}월 {week_num}주차"


def shift_week(d: DateLike, delta_weeks: int) -> date:
    return parse_day(d) + timedelta(days=7 * delta_weeks)


def jump_to(current: date, raw: Any) -> date:
    """날짜 이동 입력이 잘못되면 현재 날짜를 그대로 유지한다."""
    try:
        return parse_day(raw)
    except ValueError:
        logger.debug("Ignoring invalid date jump: %r", raw)
        return current


def week_range_label(window: Sequence[str]) -> str:
    return f"{window[0][5:].replace('-', '/')} - {window[-1][5:].replace('-', '/')}"


def year_month_label(d: DateLike) -> str:
    day = parse_day(d)
    return f"{day.year}년 {day.month}월"


def weekday_label(d: DateLike) -> str:
    return WEEKDAY_KR[parse_day(d).weekday()]


# -----------------------------
# 페이스
# -----------------------------


def compute_total_seconds(hours: Any, minutes: Any, seconds: Any) -> int:
    return (
        parse_whole_number_or_zero(hours) * 3600
        + parse_whole_number_or_zero(minutes) * 60
        + parse_whole_number_or_zero(seconds)
    )


def compute_pace(distance_km: Any, hours: Any, minutes: Any, seconds: Any) -> str:
    distance = parse_non_negative_number_or_zero(distance_km)
    if distance <= 0:
        return PACE_SENTINEL
    total_minutes = (
        parse_whole_number_or_zero(hours) * 60
        + parse_whole_number_or_zero(minutes)
        + parse_whole_number_or_zero(seconds) / 60
    )
    pace_decimal = total_minutes / distance
    pace_min = int(math.floor(pace_decimal))
    pace_sec = _round_half_up((pace_decimal - pace_min) * 60)
    if pace_sec == 60:
        pace_min += 1
        pace_sec = 0
    return f"{pace_min}'{pace_sec:02d}\""


def format_duration(hours: int, minutes: int, seconds: int) -> str:
    prefix = f"{hours}h " if hours > 0 else ""
    return f"{prefix}{minutes}m {seconds}s"


# -----------------------------
# 데이터 모델
# -----------------------------


@dataclass(frozen=True)
class LogEntry:
    id: int
    date: str
    distance_km: float
    duration_seconds: int
    pace: str
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    elevation_m: Optional[float] = None
    heart_rate_bpm: Optional[float] = None
    relative_effort: Optional[float] = None
    body_battery_drain: Optional[float] = None
    rpe: int = DEFAULT_RPE
    plan_text: str = ""
    analysis_text: str = ""

    @property
    def duration_label(self) -> str:
        return format_duration(self.hours, self.minutes, self.seconds)

    def to_record(self) -> Dict[str, Any]:
        data = asdict(self)
        return {_RECORD_KEYS[name]: value for name, value in data.items()}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "LogEntry":
        hours = parse_whole_number_or_zero(record.get("hours"))
        minutes = parse_whole_number_or_zero(record.get("minutes"))
        seconds = parse_whole_number_or_zero(record.get("seconds"))
        distance = parse_non_negative_number_or_zero(record.get("distanceKm"))
        duration = record.get("durationSeconds")
        return cls(
            id=int(record["id"]),
            date=str(record.get("date", "")),
            distance_km=distance,
            duration_seconds=(
                parse_whole_number_or_zero(duration)
                if duration is not None
                else compute_total_seconds(hours, minutes, seconds)
            ),
            pace=str(record.get("pace") or compute_pace(distance, hours, minutes, seconds)),
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            elevation_m=parse_optional_non_negative(record.get("elevationM")),
            heart_rate_bpm=parse_optional_non_negative(record.get("heartRateBpm")),
            relative_effort=parse_optional_non_negative(record.get("relativeEffort")),
            body_battery_drain=parse_optional_non_negative(record.get("bodyBatteryDrain")),
            rpe=parse_rpe(record.get("rpe")),
            plan_text=str(record.get("planText") or ""),
            analysis_text=str(record.get("analysisText") or ""),
        )


_RECORD_KEYS = {
    "id": "id",
    "date": "date",
    "distance_km": "distanceKm",
    "duration_seconds": "durationSeconds",
    "pace": "pace",
    "hours": "hours",
    "minutes": "minutes",
    "seconds": "seconds",
    "elevation_m": "elevationM",
    "heart_rate_bpm": "heartRateBpm",
    "relative_effort": "relativeEffort",
    "body_battery_drain": "bodyBatteryDrain",
    "rpe": "rpe",
    "plan_text": "planText",
    "analysis_text": "analysisText",
}


@dataclass
class WeeklyProgress:
    planned_minutes: int
    actual_minutes: int
    progress_pct: float
    actual_distance_km: float


@dataclass
class LifetimeSummary:
    total_distance_km: float
    total_runs: int


# -----------------------------
# 계획 레지스트리
# -----------------------------


class PlanRegistry:
    def __init__(self, store: KeyValueStore):
        self.store = store
        loaded = store.get(PLANS_KEY, {})
        self._plans: Dict[str, Any] = dict(loaded) if isinstance(loaded, Mapping) else {}

    def set_plan(self, day: DateLike, minutes: Any) -> None:
        key = to_day_string(parse_day(day))
        self._plans[key] = minutes
        logger.debug("Plan set: %s -> %r", key, minutes)
        self.save()

    def planned_for(self, day: DateLike) -> int:
        try:
            key = to_day_string(parse_day(day))
        except ValueError:
            return 0
        return parse_whole_number_or_zero(self._plans.get(key))

    def weekly_total(self, window: Iterable[str]) -> int:
        return sum(self.planned_for(day) for day in window)

    def plans_for_week(self, window: Iterable[str]) -> Dict[str, int]:
        return {day: self.planned_for(day) for day in window}

    def save(self) -> None:
        self.store.set(PLANS_KEY, dict(self._plans))


# -----------------------------
# 기록 레지스트리
# -----------------------------


def _sorted_desc(entries: Iterable[LogEntry]) -> List[LogEntry]:
    # sorted()는 안정 정렬이므로 같은 날짜는 기존 순서(최근 입력 우선)를 유지한다.
    return sorted(entries, key=lambda entry: entry.date, reverse=True)


def _load_entries(records: Iterable[Any]) -> List[LogEntry]:
    entries: List[LogEntry] = []
    seen_ids = set()
    for index, record in enumerate(records):
        try:
            entry = LogEntry.from_record(record)
        except (AttributeError, KeyError, OverflowError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed log record #%d: %r (%s)", index, record, exc)
            continue
        if entry.id in seen_ids:
            logger.warning("Skipping log record #%d with duplicate id %s", index, entry.id)
            continue
        seen_ids.add(entry.id)
        entries.append(entry)
    return entries


class LogRegistry:
    def __init__(self, store: KeyValueStore, *, clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.clock = clock or (lambda: time.time_ns() // 1_000_000)
        loaded = store.get(LOGS_KEY, [])
        records = loaded if isinstance(loaded, list) else []
        self._entries: List[LogEntry] = _sorted_desc(_load_entries(records))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def _next_id(self) -> int:
        candidate = int(self.clock())
        highest = max((entry.id for entry in self._entries), default=0)
        return max(candidate, highest + 1)

    def insert(self, form: Mapping[str, Any]) -> LogEntry:
        """
        폼 입력값(문자열 포함)으로 기록을 생성해 맨 앞에 추가한 뒤 날짜 내림차순으로 정렬한다.
        페이스와 총 시간은 이 시점에 계산되며 이후 수정되지 않는다.
        """
        day = to_day_string(parse_day(form.get("date", "")))
        hours = parse_whole_number_or_zero(form.get("hours"))
        minutes = parse_whole_number_or_zero(form.get("minutes"))
        seconds = parse_whole_number_or_zero(form.get("seconds"))
        distance = parse_non_negative_number_or_zero(form.get("distance_km"))
        entry = LogEntry(
            id=self._next_id(),
            date=day,
            distance_km=distance,
            duration_seconds=compute_total_seconds(hours, minutes, seconds),
            pace=compute_pace(distance, hours, minutes, seconds),
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            elevation_m=parse_optional_non_negative(form.get("elevation_m")),
            heart_rate_bpm=parse_optional_non_negative(form.get("heart_rate_bpm")),
            relative_effort=parse_optional_non_negative(form.get("relative_effort")),
            body_battery_drain=parse_optional_non_negative(form.get("body_battery_drain")),
            rpe=parse_rpe(form.get("rpe")),
            plan_text=str(form.get("plan_text") or "").strip(),
            analysis_text=str(form.get("analysis_text") or "").strip(),
        )
        self._entries = _sorted_desc([entry, *self._entries])
        logger.debug("Log inserted: id=%s date=%s distance=%.2f", entry.id, entry.date, entry.distance_km)
        self.save()
        return entry

    def delete(self, entry_id: int) -> bool:
        remaining = [entry for entry in self._entries if entry.id != entry_id]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        logger.debug("Log deleted: id=%s", entry_id)
        self.save()
        return True

    def recent(self, limit: int = 3) -> List[LogEntry]:
        return self._entries[:limit]

    def entries_in_week(self, window: Iterable[str]) -> List[LogEntry]:
        days = set(window)
        return [entry for entry in self._entries if entry.date in days]

    def total_distance(self) -> float:
        return sum(entry.distance_km for entry in self._entries)

    def total_runs(self) -> int:
        return len(self._entries)

    def save(self) -> None:
        self.store.set(LOGS_KEY, [entry.to_record() for entry in self._entries])


# -----------------------------
# 집계
# -----------------------------


def weekly_progress(window: Sequence[str], plans: PlanRegistry, logs: LogRegistry) -> WeeklyProgress:
    planned = plans.weekly_total(window)
    week_logs = logs.entries_in_week(window)
    actual = _round_half_up(sum(entry.duration_seconds for entry in week_logs) / 60)
    progress = min(actual / planned * 100, 100.0) if planned > 0 else 0.0
    return WeeklyProgress(
        planned_minutes=planned,
        actual_minutes=actual,
        progress_pct=progress,
        actual_distance_km=sum(entry.distance_km for entry in week_logs),
    )


def lifetime_summary(logs: LogRegistry) -> LifetimeSummary:
    return LifetimeSummary(total_distance_km=logs.total_distance(), total_runs=logs.total_runs())


def daily_breakdown(window: Sequence[str], plans: PlanRegistry, logs: LogRegistry) -> List[Dict[str, Any]]:
    week_logs = logs.entries_in_week(window)
    rows: List[Dict[str, Any]] = []
    for day in window:
        day_logs = [entry for entry in week_logs if entry.date == day]
        rows.append(
            {
                "date": day,
                "weekday": weekday_label(day),
                "planned_minutes": plans.planned_for(day),
                "actual_minutes": _round_half_up(sum(entry.duration_seconds for entry in day_logs) / 60),
                "distance_km": sum(entry.distance_km for entry in day_logs),
            }
        )
    return rows
