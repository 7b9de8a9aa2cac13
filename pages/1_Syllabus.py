"""
pages/1_Syllabus.py – Syllabus manager.

Lists the signed-in user's subjects for their current exam with mastery
per subject and topic, lets them edit tiers, subjects and topics, and
logs study sessions that feed the spaced-revision queue.
"""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pandas as pd
import plotly.express as px
import streamlit as st

from exam_prep.config import configure_logging
from exam_prep.errors import ExamPrepError, user_facing_message
from exam_prep.syllabus_service import (
    SyllabusService,
    calculate_subject_mastery,
    filter_subjects,
    mastery_band,
)

configure_logging()

# ─── Page config ─────────────────────────────────────────────────────────────
st.set_page_config(
    page_title="Syllabus – Exam Strategy Engine",
    page_icon="📚",
    layout="wide",
)

# ─── Theme constants ─────────────────────────────────────────────────────────
BLUE   = "#0078D4"
GREEN  = "#107C10"
ORANGE = "#CA5010"
RED    = "#D13438"
GREY   = "#616161"

BAND_COLOUR = {"high": GREEN, "medium": ORANGE, "low": RED}
TIER_LABEL = {1: "Tier 1 · Core", 2: "Tier 2 · Important", 3: "Tier 3 · Extra"}


def _badge(text: str, color: str) -> str:
    return (
        f'<span style="background:{color}15;color:{color};border:1px solid {color}40;'
        f'border-radius:12px;padding:1px 10px;font-size:0.78rem;font-weight:600;">{text}</span>'
    )


user_id = st.session_state.get("user_id")
if not user_id:
    st.info("Sign in on the home page first.")
    st.stop()

service = SyllabusService(user_id)
try:
    snapshot = service.load()
    summary = service.summary()
except ExamPrepError as exc:
    st.error(user_facing_message(exc))
    st.stop()

st.title("📚 Syllabus")

m1, m2, m3, m4 = st.columns(4)
m1.metric("Subjects", summary.total_subjects)
m2.metric("Topics", summary.total_topics)
m3.metric("Average mastery", f"{summary.average_mastery}%")
m4.metric("Mastered topics", summary.mastered_topics)

# ─── Filters ─────────────────────────────────────────────────────────────────
f1, f2, f3, f4 = st.columns([2, 1, 1, 1])
query = f1.text_input("Search subjects or topics", placeholder="e.g. normalization")
tier_pick = f2.selectbox("Tier", ["All", 1, 2, 3])
band_pick = f3.selectbox("Mastery", ["All", "high", "medium", "low"])
hide_mastered = f4.checkbox("Hide mastered", value=False)

subjects = filter_subjects(
    snapshot.subjects, snapshot.progress, query=query,
    tier=None if tier_pick == "All" else tier_pick,
    mastery=None if band_pick == "All" else band_pick,
    hide_mastered=hide_mastered,
)

if snapshot.subjects:
    chart = pd.DataFrame([{
        "Subject": s.name,
        "Mastery": calculate_subject_mastery(s, snapshot.progress),
        "Tier":    TIER_LABEL.get(s.tier, str(s.tier)),
    } for s in snapshot.subjects])
    fig = px.bar(chart, x="Mastery", y="Subject", color="Tier", orientation="h",
                 range_x=[0, 100], height=max(220, 44 * len(chart)))
    fig.update_layout(margin=dict(l=10, r=10, t=10, b=10), plot_bgcolor="#fff", legend_title_text="")
    st.plotly_chart(fig, use_container_width=True)

# ─── Subjects ────────────────────────────────────────────────────────────────
st.subheader("Subjects")
if not subjects:
    st.info("No subjects match these filters.")

for subject in subjects:
    score = calculate_subject_mastery(subject, snapshot.progress)
    band = mastery_band(score)
    with st.expander(f"{subject.name} · {score}% mastery", expanded=False):
        st.markdown(
            _badge(TIER_LABEL.get(subject.tier, f"Tier {subject.tier}"), BLUE) + " "
            + _badge(band.title(), BAND_COLOUR[band])
            + (" " + _badge("Custom", GREY) if subject.is_custom else ""),
            unsafe_allow_html=True,
        )
        rows = []
        for topic in subject.topics:
            progress = snapshot.progress.get(topic.id)
            rows.append({
                "Topic":         topic.name,
                "Mastery %":     round(progress.mastery_score) if progress else 0,
                "Revisions":     progress.revision_count if progress else 0,
                "Study minutes": progress.total_study_time if progress else 0,
                "Next revision": progress.next_revision.date().isoformat() if progress else "—",
            })
        if rows:
            st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)
        else:
            st.caption("No topics yet.")

        c1, c2, c3 = st.columns([1, 2, 1])
        new_tier = c1.selectbox("Tier", [1, 2, 3], index=subject.tier - 1, key=f"tier:{subject.id}")
        if new_tier != subject.tier:
            try:
                service.set_tier(subject.id, new_tier)
            except ExamPrepError as exc:
                st.error(user_facing_message(exc))
            else:
                st.rerun()
        with c2.form(f"topic:{subject.id}", clear_on_submit=True):
            topic_name = st.text_input("New topic")
            hours = st.number_input("Estimated hours", min_value=0.5, value=5.0, step=0.5)
            if st.form_submit_button("➕ Add topic") and topic_name.strip():
                try:
                    service.add_topic(subject.id, topic_name.strip(), estimated_hours=hours)
                except ExamPrepError as exc:
                    st.error(user_facing_message(exc))
                else:
                    st.rerun()
        if c3.button("🗑️ Remove subject", key=f"rm:{subject.id}"):
            try:
                service.remove_subject(subject.id)
            except ExamPrepError as exc:
                st.error(user_facing_message(exc))
            else:
                st.rerun()

with st.form("add_subject", clear_on_submit=True):
    st.markdown("**Add a subject**")
    a1, a2 = st.columns([3, 1])
    subject_name = a1.text_input("Subject name")
    subject_tier = a2.selectbox("Tier", [1, 2, 3], index=1)
    if st.form_submit_button("➕ Add subject"):
        try:
            service.add_subject(subject_name.strip() or None, tier=subject_tier)
        except ExamPrepError as exc:
            st.error(user_facing_message(exc))
        else:
            st.rerun()

# ─── Study log & revision queue ──────────────────────────────────────────────
left, right = st.columns(2)
with left:
    st.subheader("⏱️ Log a study session")
    topic_choices = {t.id: f"{s.name} › {t.name}" for s in snapshot.subjects for t in s.topics}
    if topic_choices:
        with st.form("study_log", clear_on_submit=True):
            topic_id = st.selectbox("Topic", list(topic_choices), format_func=topic_choices.get)
            minutes = st.number_input("Minutes studied", min_value=0, max_value=720, value=45, step=5)
            rate = st.checkbox("Rate my mastery")
            mastery = st.slider("Mastery", 0, 100, 50)
            if st.form_submit_button("Save session", type="primary"):
                try:
                    progress = service.record_study(topic_id, int(minutes), mastery if rate else None)
                except (ExamPrepError, ValueError) as exc:
                    st.error(user_facing_message(exc))
                else:
                    st.success(f"Saved. Next revision on {progress.next_revision.date().isoformat()}.")
    else:
        st.caption("Add topics to start logging study time.")

with right:
    st.subheader("🔁 Revision queue")
    try:
        queue = service.revision_queue()
    except ExamPrepError as exc:
        st.error(user_facing_message(exc))
        queue = None
    if queue:
        st.dataframe(pd.DataFrame([{
            "Topic":    item.topic_name,
            "Subject":  item.subject_name,
            "Tier":     item.tier,
            "Priority": item.priority.value.replace("_", " "),
            "Days since revision": item.days_since_last_revision,
            "Minutes":  int(item.estimated_time),
        } for item in queue]), hide_index=True, use_container_width=True)
    elif queue is not None:
        st.info("Nothing to revise right now.")
