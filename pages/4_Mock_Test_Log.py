"""
pages/4_Mock_Test_Log.py – Log external mock tests.

Section scores, an error analysis that must account for every lost
mark, mental state and environment. Saved tests feed topic accuracy
back into syllabus mastery; the history below charts accuracy over time.
"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from exam_prep.config import configure_logging
from exam_prep.database import get_mock_tests, get_user
from exam_prep.errors import ExamPrepError, FormValidationError, user_facing_message
from exam_prep.mock_test_logger import MockSection, MockTestForm, log_mock_test, summarize_mock_tests
from exam_prep.models import MockTestType, StudyTime, TopicPerformance, as_utc_datetime, get_exam_by_id
from exam_prep.syllabus_service import SyllabusService

configure_logging()

# ─── Page config ─────────────────────────────────────────────────────────────
st.set_page_config(
    page_title="Mock Test Log – Exam Strategy Engine",
    page_icon="📝",
    layout="wide",
)

BLUE   = "#0078D4"
PURPLE = "#5C2D91"
GREEN  = "#107C10"
ORANGE = "#CA5010"
RED    = "#D13438"

ERROR_COLOURS = {"Concept gaps": RED, "Careless errors": ORANGE,
                 "Intelligent guesses": PURPLE, "Time pressure": BLUE}
TREND_LABEL = {"improving": "📈 Improving", "declining": "📉 Declining",
               "stable": "➡️ Stable", "insufficient_data": "Not enough data yet"}

user_id = st.session_state.get("user_id")
if not user_id:
    st.info("Sign in on the home page first.")
    st.stop()

try:
    user = get_user(user_id)
    course_id = user.selected_exam_id if user else None
    exam = get_exam_by_id(course_id) if course_id else None
    topics = ({t.id: f"{s.name} › {t.name}" for s in SyllabusService(user_id).subjects() for t in s.topics}
              if course_id else {})
    history = get_mock_tests(user_id, limit=50, course_id=course_id)
except ExamPrepError as exc:
    st.error(user_facing_message(exc))
    st.stop()

st.title("📝 Mock Test Log")

# ─── Form ────────────────────────────────────────────────────────────────────
stages = exam.stages if exam else []
stage_names = {s.id: s.name for s in stages}
stage_id = st.selectbox("Stage", list(stage_names) or [""], format_func=lambda sid: stage_names.get(sid, "—"))
stage = next((s for s in stages if s.id == stage_id), None)
default_sections = (
    [{"section_id": sec.id, "name": sec.name, "score": 0.0, "max_score": float(sec.max_marks),
      "time_minutes": float(sec.max_time)} for sec in stage.sections]
    if stage else [{"section_id": "overall", "name": "Overall", "score": 0.0, "max_score": 100.0,
                    "time_minutes": 60.0}]
)

with st.form("mock_test"):
    c1, c2, c3, c4 = st.columns(4)
    platform = c1.text_input("Platform", placeholder="e.g. Made Easy")
    test_name = c2.text_input("Test name", placeholder="Full Mock 3")
    test_type = c3.selectbox("Type", list(MockTestType), format_func=lambda t: t.value.replace("_", " ").title())
    test_date = c4.date_input("Date", value=date.today(), max_value=date.today())

    st.markdown("**Section scores**")
    sections_df = st.data_editor(pd.DataFrame(default_sections), num_rows="dynamic",
                                 use_container_width=True, key=f"sections:{stage_id}")

    st.markdown("**Where did the lost marks go?**")
    e1, e2, e3, e4, e5 = st.columns(5)
    concept = e1.number_input("Concept gaps", min_value=0, step=1)
    careless = e2.number_input("Careless errors", min_value=0, step=1)
    guesses = e3.number_input("Intelligent guesses", min_value=0, step=1)
    pressure = e4.number_input("Time pressure", min_value=0, step=1)
    unattempted = e5.number_input("Unattempted", min_value=0, step=1)

    if topics:
        st.markdown("**Topic accuracy (optional)**")
        topic_df = st.data_editor(
            pd.DataFrame(columns=["topic_id", "questions_asked", "questions_correct"]),
            num_rows="dynamic", use_container_width=True,
            column_config={"topic_id": st.column_config.SelectboxColumn(
                "topic", options=list(topics), required=True)},
        )
    else:
        topic_df = pd.DataFrame()

    m1, m2, m3, m4 = st.columns(4)
    confidence = m1.slider("Confidence", 1, 5, 3)
    anxiety = m2.slider("Anxiety", 1, 5, 3)
    focus = m3.slider("Focus", 1, 5, 3)
    time_of_day = m4.selectbox("Time of day", list(StudyTime), format_func=lambda t: t.value.title())
    location = st.text_input("Location", value="home")
    distractions = st.text_input("Distractions (comma separated)")
    feedback = st.text_area("Notes", height=80)
    actions = st.text_area("Action items (one per line)", height=80)
    submitted = st.form_submit_button("Save mock test", type="primary")

if submitted:
    sections = [
        MockSection(str(row["section_id"]), str(row["name"]), float(row["score"] or 0),
                    float(row["max_score"] or 0), float(row["time_minutes"] or 0))
        for row in sections_df.to_dict("records") if row.get("section_id")
    ]
    topic_rows = []
    for row in topic_df.to_dict("records"):
        asked = int(row.get("questions_asked") or 0)
        correct = int(row.get("questions_correct") or 0)
        if row.get("topic_id") and asked:
            topic_rows.append(TopicPerformance(
                topic_id=row["topic_id"],
                topic_name=topics.get(row["topic_id"], ""),
                questions_asked=asked,
                questions_correct=correct,
                questions_wrong=asked - correct,
                accuracy=correct / asked,
            ))
    form = MockTestForm(
        platform=platform, test_name=test_name, stage=stage_id, type=test_type,
        date=as_utc_datetime(test_date), sections=sections,
        concept_gaps=int(concept), careless_errors=int(careless),
        intelligent_guesses=int(guesses), time_pressures=int(pressure), unattempted=int(unattempted),
        topic_performance=topic_rows,
        confidence=confidence, anxiety=anxiety, focus=focus,
        location=location, distractions=[d.strip() for d in distractions.split(",") if d.strip()],
        time_of_day=time_of_day, feedback=feedback,
        action_items=[a.strip() for a in actions.splitlines() if a.strip()],
    )
    try:
        log = log_mock_test(user_id, form, course_id)
    except FormValidationError as exc:
        st.error(user_facing_message(exc))
        for violation in exc.violations[1:]:
            st.caption(f"• {violation.message}")
    except ExamPrepError as exc:
        st.error(user_facing_message(exc))
    else:
        st.success(f"Saved {log.test_name}: {log.analysis.accuracy:.1f}% accuracy.")
        history = get_mock_tests(user_id, limit=50, course_id=course_id)

# ─── History ─────────────────────────────────────────────────────────────────
st.subheader("History")
summary = summarize_mock_tests(history)
h1, h2, h3, h4 = st.columns(4)
h1.metric("Tests logged", summary.count)
h2.metric("Average accuracy", f"{summary.average_accuracy}%")
h3.metric("Best score", f"{summary.best_score:g}")
h4.metric("Trend", TREND_LABEL[summary.trend])

if history:
    ordered = sorted(history, key=lambda log: log.date)
    left, right = st.columns([1.5, 1])
    with left:
        fig = go.Figure(go.Scatter(
            x=[log.date for log in ordered], y=summary.accuracy_series,
            mode="lines+markers", text=[log.test_name for log in ordered], line=dict(color=BLUE),
        ))
        fig.update_layout(height=280, margin=dict(l=10, r=10, t=10, b=10), plot_bgcolor="#fff",
                          yaxis=dict(range=[0, 100], title="Accuracy %"))
        st.plotly_chart(fig, use_container_width=True)
    with right:
        totals = {
            "Concept gaps":        sum(log.analysis.concept_gaps for log in history),
            "Careless errors":     sum(log.analysis.careless_errors for log in history),
            "Intelligent guesses": sum(log.analysis.intelligent_guesses for log in history),
            "Time pressure":       sum(log.analysis.time_pressures for log in history),
        }
        if any(totals.values()):
            pie = px.pie(names=list(totals), values=list(totals.values()), hole=0.5,
                         color=list(totals), color_discrete_map=ERROR_COLOURS)
            pie.update_layout(height=280, margin=dict(l=10, r=10, t=10, b=10))
            st.plotly_chart(pie, use_container_width=True)

    st.dataframe(pd.DataFrame([{
        "Date":     log.date.date().isoformat(),
        "Test":     log.test_name,
        "Platform": log.platform,
        "Score":    f"{sum(log.scores.values()):g}/{sum(log.max_scores.values()):g}",
        "Accuracy": f"{log.analysis.accuracy:.1f}%",
        "Careless": log.analysis.careless_errors,
    } for log in history]), hide_index=True, use_container_width=True)
else:
    st.info("Log your first mock test above to see trends.")
