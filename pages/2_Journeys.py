"""
pages/2_Journeys.py – Study journeys.

Create journeys (manually or from a template), record goal progress and
weekly hours, change status, and review the analytics for each journey.
"""

from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from exam_prep.config import configure_logging
from exam_prep.database import get_user
from exam_prep.errors import ExamPrepError, user_facing_message
from exam_prep.journey_service import JourneyService, filter_journeys, journey_stats
from exam_prep.models import (
    GoalUnit,
    GoalUpdate,
    JourneyPriority,
    JourneyStatus,
    WeeklyProgress,
    as_utc_datetime,
)

configure_logging()

# ─── Page config ─────────────────────────────────────────────────────────────
st.set_page_config(
    page_title="Journeys – Exam Strategy Engine",
    page_icon="🧭",
    layout="wide",
)

BLUE   = "#0078D4"
GREEN  = "#107C10"
ORANGE = "#CA5010"
RED    = "#D13438"
GREY   = "#616161"

STATUS_COLOUR = {
    JourneyStatus.PLANNING:  GREY,
    JourneyStatus.ACTIVE:    BLUE,
    JourneyStatus.COMPLETED: GREEN,
    JourneyStatus.PAUSED:    ORANGE,
    JourneyStatus.CANCELLED: RED,
}

user_id = st.session_state.get("user_id")
if not user_id:
    st.info("Sign in on the home page first.")
    st.stop()

if "journey_service" not in st.session_state:
    st.session_state["journey_service"] = JourneyService()
journeys_svc: JourneyService = st.session_state["journey_service"]

try:
    user = get_user(user_id)
    course_id = user.selected_exam_id if user else None
    journeys = journeys_svc.get_user_journeys(user_id, course_id=course_id)
except ExamPrepError as exc:
    st.error(user_facing_message(exc))
    st.stop()

st.title("🧭 Journeys")

stats = journey_stats(journeys)
s1, s2, s3, s4 = st.columns(4)
s1.metric("Total", stats.total)
s2.metric("Active", stats.active)
s3.metric("Planning", stats.planning)
s4.metric("Completed", stats.completed)

# ─── Create ──────────────────────────────────────────────────────────────────
tab_template, tab_manual = st.tabs(["📋 From a template", "✏️ Custom journey"])

with tab_template:
    templates = journeys_svc.get_journey_templates()
    for template in templates:
        with st.container(border=True):
            st.markdown(f"**{template.title}** · {template.category}")
            st.caption(f"{template.description} · {template.default_duration} days · "
                       f"~{template.estimated_hours} h · {template.success_rate}% success rate")
            if st.button("Start this journey", key=f"tpl:{template.id}"):
                try:
                    journeys_svc.create_journey_from_template(user_id, template.id, exam_id=course_id)
                except ExamPrepError as exc:
                    st.error(user_facing_message(exc))
                else:
                    st.rerun()

with tab_manual:
    with st.form("new_journey", clear_on_submit=True):
        title = st.text_input("Title")
        description = st.text_area("Description", height=80)
        c1, c2 = st.columns(2)
        target = c1.date_input("Target completion", value=date.today() + timedelta(days=60),
                               min_value=date.today())
        priority = c2.selectbox("Priority", list(JourneyPriority), index=1,
                                format_func=lambda p: p.value.title())
        goals_df = st.data_editor(
            pd.DataFrame([{"title": "", "target_value": 100.0, "unit": GoalUnit.PERCENTAGE.value}]),
            num_rows="dynamic", use_container_width=True,
            column_config={"unit": st.column_config.SelectboxColumn(
                "unit", options=[u.value for u in GoalUnit])},
        )
        if st.form_submit_button("Create journey", type="primary"):
            goals = [
                {"title": row["title"].strip(), "target_value": float(row["target_value"]), "unit": row["unit"]}
                for row in goals_df.to_dict("records")
                if isinstance(row.get("title"), str) and row["title"].strip()
            ]
            try:
                journeys_svc.create_journey(user_id, {
                    "title": title.strip(),
                    "description": description,
                    "exam_id": course_id,
                    "custom_goals": goals,
                    "target_completion_date": as_utc_datetime(target),
                    "priority": priority,
                })
            except ValueError as exc:
                st.error(f"Please check the journey details: {exc}")
            except ExamPrepError as exc:
                st.error(user_facing_message(exc))
            else:
                st.rerun()

# ─── List ────────────────────────────────────────────────────────────────────
st.subheader("Your journeys")
f1, f2 = st.columns([3, 1])
query = f1.text_input("Search", placeholder="Title or description")
status_pick = f2.selectbox("Status", ["All"] + [s.value for s in JourneyStatus])
shown = filter_journeys(journeys, query, None if status_pick == "All" else JourneyStatus(status_pick))

if not shown:
    st.info("No journeys yet. Start one from a template above.")

for journey in shown:
    tracking = journey.progress_tracking
    colour = STATUS_COLOUR.get(journey.status, GREY)
    with st.expander(f"{journey.title} · {tracking.overall_completion:.0f}% · {journey.status.value}"):
        st.markdown(
            f'<span style="color:{colour};font-weight:600;">● {journey.status.value.title()}</span> · '
            f'priority {journey.priority.value} · due {journey.target_completion_date.date().isoformat()}',
            unsafe_allow_html=True,
        )
        if journey.description:
            st.caption(journey.description)

        if journey.custom_goals:
            with st.form(f"goals:{journey.id}"):
                updates = []
                for goal in journey.custom_goals:
                    value = st.number_input(
                        f"{goal.title} ({goal.unit.value}, target {goal.target_value:g})",
                        min_value=0.0, value=float(goal.current_value), key=f"g:{journey.id}:{goal.id}",
                    )
                    if value != goal.current_value:
                        updates.append(GoalUpdate(goal_id=goal.id, new_value=value))
                hours = st.number_input("Hours studied this week", min_value=0.0, value=0.0, step=1.0,
                                        key=f"h:{journey.id}")
                if st.form_submit_button("Update progress"):
                    weekly = WeeklyProgress(hours_studied=hours) if hours else None
                    try:
                        journeys_svc.update_journey_progress(journey.id, updates, weekly)
                    except ExamPrepError as exc:
                        st.error(user_facing_message(exc))
                    else:
                        st.rerun()

        for milestone in tracking.milestone_achievements[-3:]:
            st.success(f"{milestone.title} · {milestone.celebration_message}")

        a1, a2, a3 = st.columns(3)
        new_status = a1.selectbox("Status", list(JourneyStatus), index=list(JourneyStatus).index(journey.status),
                                  format_func=lambda s: s.value.title(), key=f"st:{journey.id}")
        if new_status != journey.status:
            journeys_svc.update_journey_status(journey.id, new_status)
            st.rerun()
        show_analytics = a2.toggle("Analytics", key=f"an:{journey.id}")
        if a3.button("🗑️ Delete", key=f"del:{journey.id}"):
            journeys_svc.delete_journey(journey.id)
            st.rerun()

        if show_analytics:
            analytics = journeys_svc.get_journey_analytics(journey.id)
            gauge = go.Figure(go.Indicator(
                mode="gauge+number", value=analytics.completion_rate,
                number={"suffix": "%"}, gauge={"axis": {"range": [0, 100]}, "bar": {"color": colour}},
            ))
            gauge.update_layout(height=200, margin=dict(l=20, r=20, t=20, b=10))
            g1, g2 = st.columns([1, 1.4])
            g1.plotly_chart(gauge, use_container_width=True)
            with g2:
                st.caption(f"Weekly hours: {analytics.average_weekly_hours:.1f} · "
                           f"velocity: {analytics.goal_completion_velocity:.2f} goals/week · "
                           f"percentile: {analytics.comparison_with_similar_users.percentile:.0f}")
                st.caption(f"Predicted completion: {analytics.predicted_completion_date.date().isoformat()}")
                for risk in analytics.risk_factors:
                    st.warning(risk)
                for tip in analytics.recommendations:
                    st.info(tip)
