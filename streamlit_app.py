# streamlit_app.py – Exam Strategy Engine
# Onboarding wizard and study dashboard for competitive-exam preparation

import sys
from datetime import date, timedelta
from pathlib import Path

# make src/ importable without installing the package
sys.path.insert(0, str(Path(__file__).parent / "src"))

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from exam_prep.config import configure_logging, get_settings
from exam_prep.database import get_mock_tests, get_user, init_db
from exam_prep.errors import ExamPrepError, FormValidationError, user_facing_message
from exam_prep.journey_service import JourneyService, journey_stats
from exam_prep.mock_test_logger import summarize_mock_tests
from exam_prep.models import CustomExam, PersonaType, StudyTime, UserPersona, as_utc_datetime, utcnow
from exam_prep.onboarding import CUSTOM_EXAM_ID, STEP_TITLES, OnboardingWizard
from exam_prep.syllabus_service import SyllabusService, calculate_subject_mastery

configure_logging()
init_db()

# ─── Page config ─────────────────────────────────────────────────────────────
st.set_page_config(
    page_title="Exam Strategy Engine",
    page_icon="🎯",
    layout="wide",
)

# ─── Theme constants ─────────────────────────────────────────────────────────
BG_CARD      = "#FFFFFF"
BLUE         = "#0078D4"
PURPLE       = "#7B2FF2"
GREEN        = "#107C41"
ORANGE       = "#FF6F00"
RED          = "#CA5010"
TEXT_PRIMARY = "#1B1B1B"
TEXT_MUTED   = "#616161"
BORDER       = "#E1DFDD"

TIER_COLOUR = {1: RED, 2: ORANGE, 3: GREEN}
PERSONA_LABELS = {
    PersonaType.STUDENT:              "🎓 Full-time student",
    PersonaType.WORKING_PROFESSIONAL: "💼 Working professional",
    PersonaType.FREELANCER:           "🧑‍💻 Freelancer",
}

st.markdown("""
<style>
  [data-testid="stAppViewContainer"] { background: #F5F5F5; }
  [data-testid="stHeader"]           { background: #fff !important; border-bottom: 1px solid #E1DFDD; }
  h1, h2, h3, h4                     { color: #1B1B1B !important; font-family: 'Segoe UI', sans-serif; }
  .stButton > button { border-radius: 4px !important; font-weight: 600 !important; }
  [data-testid="stSidebar"] {
    background: linear-gradient(180deg, #0078D4 0%, #005A9E 100%) !important;
  }
  [data-testid="stSidebar"] h1, [data-testid="stSidebar"] h2, [data-testid="stSidebar"] h3,
  [data-testid="stSidebar"] .stMarkdown p, [data-testid="stSidebar"] label { color: #fff !important; }
  [data-testid="stSidebar"] .stCaption { color: rgba(255,255,255,0.7) !important; }
</style>
""", unsafe_allow_html=True)


def _card(label: str, value: str, color: str = BLUE) -> str:
    return f"""
    <div style="background:{BG_CARD};border-left:4px solid {color};border-radius:4px;
                padding:10px 16px;margin-bottom:8px;border:1px solid {BORDER};">
      <div style="color:{TEXT_MUTED};font-size:0.7rem;font-weight:600;text-transform:uppercase;
                  letter-spacing:.06em;margin-bottom:3px;">{label}</div>
      <div style="color:{TEXT_PRIMARY};font-size:1.1rem;font-weight:700;">{value}</div>
    </div>"""


# ─── Sign-in ─────────────────────────────────────────────────────────────────
settings = get_settings()

if "user_id" not in st.session_state:
    st.title("🎯 Exam Strategy Engine")
    st.caption("Plan, track and test your preparation for competitive exams.")
    with st.form("login_form"):
        _uid = st.text_input("User ID", placeholder="e.g. asha.rao")
        _c1, _c2 = st.columns(2)
        _sign_in = _c1.form_submit_button("Sign In →", type="primary", use_container_width=True)
        _demo = _c2.form_submit_button("Use demo account", use_container_width=True)
    if _sign_in and _uid.strip():
        st.session_state["user_id"] = _uid.strip()
        st.rerun()
    elif _sign_in:
        st.error("Please enter a user ID.")
    if _demo:
        st.session_state["user_id"] = settings.app.demo_user_id
        st.rerun()
    st.stop()

user_id: str = st.session_state["user_id"]

with st.sidebar:
    st.markdown("### 🎯 Exam Strategy Engine")
    st.caption(f"Signed in as **{user_id}**")
    st.markdown("---")
    st.page_link("pages/1_Syllabus.py", label="📚 Syllabus")
    st.page_link("pages/2_Journeys.py", label="🧭 Journeys")
    st.page_link("pages/3_Adaptive_Tests.py", label="🧠 Adaptive Tests")
    st.page_link("pages/4_Mock_Test_Log.py", label="📝 Mock Test Log")
    st.markdown("---")
    with st.expander("⚙️ Settings"):
        for _k, _v in settings.status_summary().items():
            st.caption(f"**{_k}:** {_v}")
    if st.button("🚪  Sign Out", key="sidebar_signout", use_container_width=True):
        for k in list(st.session_state.keys()):
            del st.session_state[k]
        st.rerun()

try:
    user = get_user(user_id)
except ExamPrepError as exc:
    st.error(user_facing_message(exc))
    st.stop()


# ─── Onboarding wizard ───────────────────────────────────────────────────────

def _wizard() -> OnboardingWizard:
    key = f"wizard:{user_id}"
    if key not in st.session_state:
        st.session_state[key] = OnboardingWizard(user_id)
    return st.session_state[key]


def _field_errors(wizard: OnboardingWizard) -> dict[str, str]:
    if st.session_state.get("step_shown") != wizard.current_step:
        return {}
    return st.session_state.get("step_errors", {})


def _render_persona_step(wizard: OnboardingWizard) -> None:
    current = wizard.data.user_persona.type
    options = list(PERSONA_LABELS)
    chosen = st.radio("Which describes you best?", options, index=options.index(current),
                      format_func=PERSONA_LABELS.get)
    if chosen != current:
        wizard.update_field("user_persona", UserPersona(type=chosen))


def _render_exam_step(wizard: OnboardingWizard, errors: dict[str, str]) -> None:
    data = wizard.data
    name = st.text_input("Your name", value=data.display_name, max_chars=60)
    if name != data.display_name:
        wizard.update_field("display_name", name)
    if "display_name" in errors:
        st.error(errors["display_name"])

    query = st.text_input("Search exams", placeholder="GATE, UPSC, banking…")
    exams = wizard.filtered_exams(query)
    ids = [e.id for e in exams] + [CUSTOM_EXAM_ID]
    labels = {e.id: f"{e.name} · {e.category}" for e in exams}
    labels[CUSTOM_EXAM_ID] = "✏️ Custom exam"
    index = ids.index(data.selected_exam_id) if data.selected_exam_id in ids else None
    picked = st.radio("Exam", ids, index=index, format_func=labels.get)
    if picked and picked != data.selected_exam_id:
        wizard.select_exam(picked)
        st.rerun()
    if "selected_exam_id" in errors:
        st.error(errors["selected_exam_id"])

    if data.is_custom_exam:
        custom = data.custom_exam or CustomExam()
        exam_name = st.text_input("Custom exam name", value=custom.name or "")
        if exam_name != (custom.name or ""):
            wizard.update_field("custom_exam", custom.model_copy(update={"name": exam_name}))

    default_date = data.exam_date.date() if data.exam_date else date.today() + timedelta(days=90)
    exam_date = st.date_input("Exam date", value=default_date, min_value=date.today())
    if data.exam_date is None or exam_date != data.exam_date.date():
        wizard.update_field("exam_date", exam_date)
    if "exam_date" in errors:
        st.error(errors["exam_date"])


def _render_syllabus_step(wizard: OnboardingWizard, errors: dict[str, str]) -> None:
    st.caption("Tier 1 subjects get the most attention; tier 3 the least.")
    for subject in list(wizard.data.syllabus):
        c_name, c_tier, c_topics, c_del = st.columns([3, 1.2, 1, 0.6])
        if subject.is_custom:
            new_name = c_name.text_input("Subject", value=subject.name, key=f"name:{subject.id}",
                                         label_visibility="collapsed")
            if new_name != subject.name:
                wizard.rename_subject(subject.id, new_name)
        else:
            c_name.markdown(f"**{subject.name}**")
        tier = c_tier.selectbox("Tier", [1, 2, 3], index=subject.tier - 1, key=f"tier:{subject.id}",
                                label_visibility="collapsed")
        if tier != subject.tier:
            wizard.update_subject_tier(subject.id, tier)
        c_topics.caption(f"{len(subject.topics)} topics")
        if subject.is_custom and c_del.button("🗑️", key=f"del:{subject.id}"):
            wizard.remove_subject(subject.id)
            st.rerun()
    if st.button("➕ Add custom subject"):
        wizard.add_custom_subject()
        st.rerun()
    if "syllabus" in errors:
        st.error(errors["syllabus"])


def _render_preferences_step(wizard: OnboardingWizard, errors: dict[str, str]) -> None:
    data = wizard.data
    hours = st.slider("Daily study goal (hours)", 1.0, 12.0,
                      value=min(12.0, max(1.0, data.daily_study_goal_minutes / 60)), step=0.5)
    minutes = int(hours * 60)
    if minutes != data.daily_study_goal_minutes:
        wizard.update_field("daily_study_goal_minutes", minutes)

    times = list(StudyTime)
    slot = st.selectbox("Preferred study time", times, index=times.index(data.preferred_study_time),
                        format_func=lambda t: t.value.title())
    if slot != data.preferred_study_time:
        wizard.update_field("preferred_study_time", slot)

    st.markdown("**What each tier means to you**")
    tiers = dict(data.tier_definitions)
    for tier in (1, 2, 3):
        tiers[tier] = st.text_input(f"Tier {tier}", value=tiers.get(tier, ""), key=f"tierdef:{tier}")
    if tiers != data.tier_definitions:
        wizard.update_field("tier_definitions", tiers)

    raw = st.text_input("Revision intervals (days, comma separated)",
                        value=", ".join(str(d) for d in data.revision_intervals))
    try:
        intervals = [int(p) for p in raw.split(",") if p.strip()]
    except ValueError:
        st.error("Revision intervals must be whole numbers.")
    else:
        if intervals != data.revision_intervals:
            wizard.update_field("revision_intervals", intervals)
    for key, message in errors.items():
        if key.startswith("preferences."):
            st.error(message)


def render_onboarding() -> None:
    wizard = _wizard()
    step = wizard.current_step
    st.title("👋 Let's set up your preparation")
    st.progress(step / len(STEP_TITLES), text=f"Step {step} of {len(STEP_TITLES)} · {wizard.step_title}")
    errors = _field_errors(wizard)

    if step == 1:
        _render_persona_step(wizard)
    elif step == 2:
        _render_exam_step(wizard, errors)
    elif step == 3:
        _render_syllabus_step(wizard, errors)
    else:
        _render_preferences_step(wizard, errors)

    st.markdown("---")
    c_back, _, c_next = st.columns([1, 3, 1])
    if step > 1 and c_back.button("← Back", use_container_width=True):
        wizard.previous_step()
        st.session_state.pop("step_errors", None)
        st.rerun()

    if step < len(STEP_TITLES):
        if c_next.button("Next →", type="primary", use_container_width=True):
            if wizard.next_step():
                st.session_state.pop("step_errors", None)
            else:
                st.session_state["step_errors"] = wizard.step_result().errors_by_field()
                st.session_state["step_shown"] = step
            st.rerun()
        return

    if c_next.button("Complete setup ✓", type="primary", use_container_width=True):
        try:
            with st.spinner("Saving your profile and syllabus…"):
                outcome = wizard.complete()
        except FormValidationError as exc:
            st.error(user_facing_message(exc))
            for violation in exc.violations:
                st.caption(f"• {violation.message}")
            return
        except ExamPrepError as exc:
            st.error(user_facing_message(exc))
            return
        for warning in outcome.warnings:
            st.warning(warning)
        st.session_state.pop(f"wizard:{user_id}", None)
        st.success("You're all set!")
        st.balloons()
        st.rerun()


# ─── Dashboard ───────────────────────────────────────────────────────────────

def render_dashboard() -> None:
    exam = user.current_exam
    days_left = (as_utc_datetime(exam.target_date) - utcnow()).days if exam else None
    st.title(f"Welcome back, {user.display_name or user_id} 👋")
    if exam:
        st.caption(f"Preparing for **{exam.name}**")

    try:
        syllabus = SyllabusService(user_id)
        summary = syllabus.summary()
        snapshot = syllabus.load()
        queue = syllabus.revision_queue()
        journeys = JourneyService().get_user_journeys(user_id, course_id=syllabus.course_id)
        mocks = get_mock_tests(user_id, limit=20, course_id=syllabus.course_id)
    except ExamPrepError as exc:
        st.error(user_facing_message(exc))
        return

    c1, c2, c3, c4 = st.columns(4)
    c1.markdown(_card("Days to exam", str(days_left) if days_left is not None else "—", BLUE),
                unsafe_allow_html=True)
    c2.markdown(_card("Average mastery", f"{summary.average_mastery}%", PURPLE), unsafe_allow_html=True)
    c3.markdown(_card("Topics mastered", f"{summary.mastered_topics}/{summary.total_topics}", GREEN),
                unsafe_allow_html=True)
    c4.markdown(_card("Revisions due", str(len(queue)), ORANGE if queue else GREEN), unsafe_allow_html=True)

    left, right = st.columns([1.4, 1])
    with left:
        st.subheader("📚 Mastery by subject")
        names = [s.name for s in snapshot.subjects]
        values = [calculate_subject_mastery(s, snapshot.progress) for s in snapshot.subjects]
        fig = go.Figure(go.Bar(
            x=values, y=names, orientation="h",
            marker_color=[TIER_COLOUR.get(s.tier, BLUE) for s in snapshot.subjects],
            text=[f"{v}%" for v in values], textposition="auto",
        ))
        fig.update_layout(height=max(220, 48 * len(names)), margin=dict(l=10, r=10, t=10, b=10),
                          xaxis=dict(range=[0, 100], title="Mastery %"), plot_bgcolor="#fff")
        st.plotly_chart(fig, use_container_width=True)

    with right:
        st.subheader("🔁 Revision queue")
        if queue:
            st.dataframe(pd.DataFrame([{
                "Topic":    item.topic_name,
                "Subject":  item.subject_name,
                "Priority": item.priority.value.replace("_", " "),
                "Mastery":  f"{item.mastery_score:.0f}%",
                "Minutes":  int(item.estimated_time),
            } for item in queue[:8]]), hide_index=True, use_container_width=True)
        else:
            st.info("Nothing due. Log a study session on the Syllabus page to start the schedule.")

        st.subheader("🧭 Journeys")
        stats = journey_stats(journeys)
        st.caption(f"{stats.active} active · {stats.planning} planning · {stats.completed} completed")
        for journey in journeys[:3]:
            st.progress(min(1.0, journey.progress_tracking.overall_completion / 100),
                        text=f"{journey.title} · {journey.progress_tracking.overall_completion:.0f}%")

    st.subheader("📝 Mock test trend")
    mock_summary = summarize_mock_tests(mocks)
    if mock_summary.count:
        ordered = sorted(mocks, key=lambda m: m.date)
        trend_fig = go.Figure(go.Scatter(
            x=[m.date for m in ordered], y=mock_summary.accuracy_series,
            mode="lines+markers", line=dict(color=BLUE),
        ))
        trend_fig.update_layout(height=260, margin=dict(l=10, r=10, t=10, b=10),
                                yaxis=dict(range=[0, 100], title="Accuracy %"), plot_bgcolor="#fff")
        st.plotly_chart(trend_fig, use_container_width=True)
        st.caption(f"{mock_summary.count} tests · average {mock_summary.average_accuracy}% · "
                   f"trend: {mock_summary.trend.replace('_', ' ')}")
    else:
        st.info("No mock tests logged yet.")


if user is None or not user.onboarding_completed:
    render_onboarding()
else:
    render_dashboard()
