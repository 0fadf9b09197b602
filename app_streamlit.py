import logging
from datetime import date
from typing import Any, Dict, List

import altair as alt
import pandas as pd
import streamlit as st

from runlog_core import (
    LogEntry,
    LogRegistry,
    PlanRegistry,
    compute_pace,
    daily_breakdown,
    jump_to,
    lifetime_summary,
    shift_week,
    to_day_string,
    week_of_month_label,
    week_range_label,
    week_window,
    weekday_label,
    weekly_progress,
    year_month_label,
)
from runlog_store import JsonFileStore, StoreConfig, StoreError

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

VIEWS = ["대시보드", "계획하기", "기록하기", "로그 목록"]


def _init_state() -> None:
    if "plans" not in st.session_state or "logs" not in st.session_state:
        store = JsonFileStore.from_config(StoreConfig.from_env())
        st.session_state.plans = PlanRegistry(store)
        st.session_state.logs = LogRegistry(store)
    st.session_state.setdefault("plan_date", date.today())


def _format_day(day: str) -> str:
    parsed = date.fromisoformat(day)
    return f"{parsed.month}월 {parsed.day}일 {weekday_label(parsed)}요일"


def render_header(window: List[str]) -> None:
    col1, col2 = st.columns([3, 1])
    col1.title("RUNLOG Plan")
    col2.caption(year_month_label(window[0]))
    col2.markdown(f"**{week_range_label(window)}**")


def render_log_card(entry: LogEntry) -> None:
    st.caption(f"{week_of_month_label(entry.date)} • {_format_day(entry.date)}")
    line = f"**{entry.distance_km:g} km** · {entry.pace}/km"
    if entry.body_battery_drain:
        line += f" · 🔋 -{entry.body_battery_drain:g}"
    st.markdown(line)


def render_week_chart(rows: List[Dict[str, Any]]) -> None:
    chart_rows = [
        {"요일": row["weekday"], "유형": "계획 시간", "분": row["planned_minutes"]} for row in rows
    ]
    chart_rows += [
        {"요일": row["weekday"], "유형": "실행 시간", "분": row["actual_minutes"]} for row in rows
    ]
    chart_df = pd.DataFrame(chart_rows)
    chart = (
        alt.Chart(chart_df)
        .mark_bar()
        .encode(
            x=alt.X("요일:N", sort=[row["weekday"] for row in rows], axis=alt.Axis(title="")),
            xOffset="유형:N",
            y=alt.Y("분:Q", axis=alt.Axis(title="분")),
            color=alt.Color(
                "유형:N",
                scale=alt.Scale(domain=["계획 시간", "실행 시간"], range=["#2563eb", "#f97316"]),
                legend=alt.Legend(title=""),
            ),
            tooltip=["요일", "유형", "분"],
        )
        .properties(height=240)
    )
    st.altair_chart(chart, use_container_width=True)


def render_dashboard(window: List[str], plans: PlanRegistry, logs: LogRegistry) -> None:
    summary = lifetime_summary(logs)
    col1, col2 = st.columns(2)
    col1.metric("누적 거리", f"{summary.total_distance_km:.1f} km")
    col2.metric("총 러닝 횟수", f"{summary.total_runs} 회")

    st.subheader("주간 계획 달성")
    progress = weekly_progress(window, plans, logs)
    st.progress(int(round(progress.progress_pct)), text=f"진행률 {round(progress.progress_pct)}%")
    col1, col2, col3 = st.columns(3)
    col1.metric("실행 시간", f"{progress.actual_minutes} 분")
    col2.metric("계획 시간", f"{progress.planned_minutes} 분")
    col3.metric("주간 거리", f"{progress.actual_distance_km:.1f} km")
    render_week_chart(daily_breakdown(window, plans, logs))

    st.subheader("최근 기록")
    recent = logs.recent(3)
    if not recent:
        st.info("아직 기록이 없습니다.")
    for entry in recent:
        render_log_card(entry)


def render_planning(window: List[str], plans: PlanRegistry) -> None:
    col_prev, col_jump, col_next = st.columns([1, 2, 1])
    if col_prev.button("◀ 이전 주"):
        st.session_state.plan_date = shift_week(st.session_state.plan_date, -1)
        st.rerun()
    if col_next.button("다음 주 ▶"):
        st.session_state.plan_date = shift_week(st.session_state.plan_date, 1)
        st.rerun()
    selected = col_jump.date_input("특정 날짜로 이동", value=st.session_state.plan_date)
    moved = jump_to(st.session_state.plan_date, selected)
    if moved != st.session_state.plan_date:
        st.session_state.plan_date = moved
        st.rerun()

    st.subheader("주간 목표 설정")
    st.caption("선택한 주간의 목표 시간을 입력하세요.")
    today = to_day_string(date.today())
    for day, current in plans.plans_for_week(window).items():
        label = f"{_format_day(day)}" + (" ⭐ 오늘" if day == today else "")
        value = st.number_input(label, min_value=0, step=5, value=current, key=f"plan_{day}")
        if int(value) != current:
            plans.set_plan(day, int(value))
    st.metric("TOTAL", f"{plans.weekly_total(window)} 분")

    if st.button("주간 계획 저장하기", type="primary"):
        plans.save()
        st.success("주간 계획이 저장되었습니다!")


ENTRY_DEFAULTS: Dict[str, Any] = {
    "entry_plan_text": "",
    "entry_distance": "",
    "entry_hours": "0",
    "entry_minutes": "0",
    "entry_seconds": "0",
    "entry_elevation": "",
    "entry_heart_rate": "",
    "entry_relative_effort": "",
    "entry_body_battery": "",
    "entry_rpe": 5,
    "entry_analysis_text": "",
}


def _init_entry_state() -> None:
    st.session_state.setdefault("entry_date", date.today())
    for key, value in ENTRY_DEFAULTS.items():
        st.session_state.setdefault(key, value)


def _submit_entry() -> None:
    state = st.session_state
    try:
        entry = state.logs.insert(
            {
                "date": state.entry_date,
                "plan_text": state.entry_plan_text,
                "distance_km": state.entry_distance,
                "hours": state.entry_hours,
                "minutes": state.entry_minutes,
                "seconds": state.entry_seconds,
                "elevation_m": state.entry_elevation,
                "heart_rate_bpm": state.entry_heart_rate,
                "relative_effort": state.entry_relative_effort,
                "body_battery_drain": state.entry_body_battery,
                "rpe": state.entry_rpe,
                "analysis_text": state.entry_analysis_text,
            }
        )
    except ValueError as err:
        state.entry_error = str(err)
        return
    # 저장 후 입력 폼을 비우고 대시보드로 돌아간다. 날짜는 유지한다.
    for key, value in ENTRY_DEFAULTS.items():
        state[key] = value
    state.view = VIEWS[0]
    state.flash = f"{entry.date} 기록이 저장되었습니다. ({entry.pace}/km)"


def render_entry(plans: PlanRegistry) -> None:
    _init_entry_state()
    error = st.session_state.pop("entry_error", None)
    if error:
        st.error(f"입력 값을 확인해 주세요: {error}")

    st.subheader("1. 계획 확인 (Plan)")
    entry_date = st.date_input("날짜", key="entry_date")
    planned = plans.planned_for(entry_date)
    st.caption(f"계획: {planned}분" if planned > 0 else "계획 없음")
    st.text_area("오늘의 목표 (세부 내용)", placeholder="예: 인터벌 400m x 10회, 빌드업 조깅 등", key="entry_plan_text")

    st.subheader("2. 실행 (Do)")
    col1, col2 = st.columns(2)
    distance = col1.text_input("거리 (km)", placeholder="0.00", key="entry_distance")
    col_h, col_m, col_s = st.columns(3)
    hours = col_h.text_input("시간", key="entry_hours")
    minutes = col_m.text_input("분", key="entry_minutes")
    seconds = col_s.text_input("초", key="entry_seconds")
    col2.metric("예상 페이스", f"{compute_pace(distance, hours, minutes, seconds)}/km")

    col1, col2, col3 = st.columns(3)
    col1.text_input("상승고도 (m)", key="entry_elevation")
    col2.text_input("심박 (bpm)", key="entry_heart_rate")
    col3.text_input("상대적 노력", key="entry_relative_effort")
    st.text_input("배터리 (체력 소모)", placeholder="소모량 (예: 50)", help="음수로 표시됩니다", key="entry_body_battery")
    st.slider("체감 난이도 (RPE)", min_value=1, max_value=10, key="entry_rpe")

    st.subheader("3. 분석 (See)")
    st.text_area("피드백 작성", key="entry_analysis_text")

    st.button("기록 저장하기", type="primary", key="entry_save", on_click=_submit_entry)


def render_log_list(logs: LogRegistry) -> None:
    st.subheader("전체 러닝 로그")
    if not len(logs):
        st.info("아직 기록이 없습니다.")
        return
    table = pd.DataFrame(
        [
            {
                "날짜": entry.date,
                "주차": week_of_month_label(entry.date),
                "거리(km)": entry.distance_km,
                "페이스": entry.pace,
                "시간": entry.duration_label,
                "RPE": entry.rpe,
            }
            for entry in logs
        ]
    )
    st.dataframe(table, hide_index=True, use_container_width=True)

    for entry in logs:
        with st.expander(f"{week_of_month_label(entry.date)} · {_format_day(entry.date)} · {entry.distance_km:g} km"):
            st.markdown(f"- Pace: **{entry.pace}/km** · 시간 {entry.duration_label}")
            if entry.heart_rate_bpm:
                st.markdown(f"- 심박: {entry.heart_rate_bpm:g}")
            if entry.relative_effort:
                st.markdown(f"- 노력: {entry.relative_effort:g}")
            if entry.body_battery_drain:
                st.markdown(f"- 체력 소모: -{entry.body_battery_drain:g}")
            if entry.plan_text:
                st.markdown(f"**계획** {entry.plan_text}")
            if entry.analysis_text:
                st.markdown(f"**분석** {entry.analysis_text}")
            confirm = st.checkbox("이 기록을 삭제하시겠습니까?", key=f"confirm_{entry.id}")
            if st.button("삭제", key=f"delete_{entry.id}", disabled=not confirm):
                logs.delete(entry.id)
                st.rerun()


st.set_page_config(page_title="RUNLOG Plan", layout="centered")

try:
    _init_state()
except StoreError as err:
    st.error(f"저장된 데이터를 불러오지 못했습니다: {err}")
    st.stop()

plans: PlanRegistry = st.session_state.plans
logs: LogRegistry = st.session_state.logs
window = week_window(st.session_state.plan_date)

with st.sidebar:
    view = st.radio("메뉴", VIEWS, key="view")

render_header(window)
flash = st.session_state.pop("flash", None)
if flash:
    st.success(flash)

if view == "대시보드":
    render_dashboard(window, plans, logs)
elif view == "계획하기":
    render_planning(window, plans)
elif view == "기록하기":
    render_entry(plans)
else:
    render_log_list(logs)
