"""
demo_onboarding.py – Interactive terminal walkthrough of onboarding

Runs the same four-step wizard as the web app (persona, exam, syllabus
tiers, preferences), saves the profile and syllabus, and prints the
resulting syllabus and journey. Finishes with an optional five-question
adaptive check-in test (the question bank is seeded if empty).

Run:
    python demo_onboarding.py [user-id]
"""

from __future__ import annotations

import sys
import time
from datetime import timedelta
from pathlib import Path

# ── make src/ importable without installing the package ──────────────────────
sys.path.insert(0, str(Path(__file__).parent / "src"))

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from exam_prep.adaptive_testing_service import AdaptiveTestingService
from exam_prep.config import configure_logging, get_settings
from exam_prep.database import QUESTION_BANK, get_syllabus_for_course, get_user, init_db, list_documents
from exam_prep.errors import ExamPrepError, FormValidationError, NotFoundError, user_facing_message
from exam_prep.journey_service import JourneyService
from exam_prep.models import EXAMS_DATA, AdaptiveTest, PersonaType, StudyTime, UserPersona, utcnow
from exam_prep.onboarding import OnboardingOutcome, OnboardingWizard
from exam_prep.seed_demo_data import seed_question_bank

console = Console()

TIER_STYLE = {1: "bold red", 2: "bold yellow", 3: "bold green"}


# ─── Prompts ─────────────────────────────────────────────────────────────────

def _show_step_errors(wizard: OnboardingWizard) -> None:
    for violation in wizard.step_result().errors:
        console.print(f"   [red]✗ {violation.message}[/red]")


def ask_persona(wizard: OnboardingWizard) -> None:
    choices = [p.value for p in PersonaType]
    persona = Prompt.ask("[cyan]1.[/cyan] Which describes you best?", choices=choices, default="student")
    wizard.update_field("user_persona", UserPersona(type=PersonaType(persona)))


def ask_exam(wizard: OnboardingWizard) -> None:
    name = Prompt.ask("[cyan]2.[/cyan] Your name")
    wizard.update_field("display_name", name.strip())

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan", padding=(0, 1))
    table.add_column("#", justify="right")
    table.add_column("Exam")
    table.add_column("Category", style="dim")
    for i, exam in enumerate(EXAMS_DATA, start=1):
        table.add_row(str(i), exam.name, exam.category)
    console.print(table)
    pick = IntPrompt.ask("   Pick an exam", choices=[str(i) for i in range(1, len(EXAMS_DATA) + 1)], default=1)
    wizard.select_exam(EXAMS_DATA[pick - 1].id)

    days = IntPrompt.ask("   How many days until your exam?", default=90)
    wizard.update_field("exam_date", utcnow() + timedelta(days=days))


def ask_syllabus(wizard: OnboardingWizard) -> None:
    console.print("[cyan]3.[/cyan] Set a tier for each subject [dim](1 = core … 3 = extra)[/dim]")
    for subject in wizard.data.syllabus:
        tier = IntPrompt.ask(f"   {subject.name}", choices=["1", "2", "3"], default=subject.tier)
        wizard.update_subject_tier(subject.id, tier)


def ask_preferences(wizard: OnboardingWizard) -> None:
    hours = IntPrompt.ask("[cyan]4.[/cyan] Daily study goal in hours", default=4)
    slot = Prompt.ask("   Preferred study time", choices=[t.value for t in StudyTime], default="morning")
    wizard.update_fields(daily_study_goal_minutes=hours * 60, preferred_study_time=StudyTime(slot))


STEPS = {1: ask_persona, 2: ask_exam, 3: ask_syllabus, 4: ask_preferences}


def run_wizard(wizard: OnboardingWizard) -> OnboardingOutcome:
    while True:
        STEPS[wizard.current_step](wizard)
        if wizard.current_step == len(STEPS):
            if not wizard.step_result().passed:
                _show_step_errors(wizard)
                continue
            return wizard.complete()
        if not wizard.next_step():
            _show_step_errors(wizard)


# ─── Display ─────────────────────────────────────────────────────────────────

def show_outcome(outcome: OnboardingOutcome) -> None:
    user = get_user(outcome.user_id)
    console.print()
    console.rule("[bold magenta]Onboarding complete[/bold magenta]")
    console.print()

    summary = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    summary.add_column("Key",   style="bold cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Student", user.display_name)
    summary.add_row("Exam", user.current_exam.name)
    summary.add_row("Exam date", user.current_exam.target_date.date().isoformat())
    summary.add_row("Daily goal", f"{user.preferences.daily_study_goal_minutes / 60:g} h")
    summary.add_row("Save attempts", str(outcome.attempts))
    console.print(Panel(summary, title="[bold]Profile[/bold]", border_style="magenta"))

    syllabus = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan", padding=(0, 1))
    syllabus.add_column("Subject")
    syllabus.add_column("Tier", justify="center")
    syllabus.add_column("Topics", justify="right")
    syllabus.add_column("Hours", justify="right")
    for subject in get_syllabus_for_course(outcome.user_id, outcome.course_id):
        syllabus.add_row(
            subject.name,
            f"[{TIER_STYLE[subject.tier]}]{subject.tier}[/{TIER_STYLE[subject.tier]}]",
            str(len(subject.topics)),
            f"{subject.estimated_hours:g}" if subject.estimated_hours else "—",
        )
    console.print(Panel(syllabus, title="[bold]Syllabus[/bold]", border_style="blue"))

    if outcome.journey_id:
        journey = JourneyService().get_journey(outcome.journey_id)
        console.print(Panel(
            f"[bold]{journey.title}[/bold]\n[dim]{journey.description}[/dim]\n"
            f"Target: {journey.target_completion_date.date().isoformat()} · priority {journey.priority.value}",
            title="[bold]Journey[/bold]", border_style="green",
        ))
    for warning in outcome.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")
    console.print()


# ─── Quick adaptive test ─────────────────────────────────────────────────────

def run_quick_test(outcome: OnboardingOutcome, questions: int = 5) -> AdaptiveTest:
    """Five adaptive questions over the learner's syllabus, answered in the terminal."""
    if not list_documents(QUESTION_BANK):
        console.print(f"[dim]Seeded {seed_question_bank()} questions into an empty bank.[/dim]")

    service = AdaptiveTestingService()
    subjects = [s.id for s in get_syllabus_for_course(outcome.user_id, outcome.course_id)]
    test = service.create_adaptive_test(outcome.user_id, {
        "title": "Onboarding check-in",
        "subjects": subjects,
        "course_id": outcome.course_id,
        "question_count": questions,
    })
    session = service.start_test_session(outcome.user_id, test.id)
    question = session.next_question_preview
    number = 1
    while question is not None:
        console.print(f"\n[bold cyan]Q{number}[/bold cyan] [dim]({question.difficulty.value})[/dim] {question.question}")
        for i, option in enumerate(question.options, start=1):
            console.print(f"   {i}. {option}")
        shown = time.monotonic()
        pick = IntPrompt.ask("   Your answer", choices=[str(i) for i in range(1, len(question.options) + 1)])
        elapsed_ms = max(1, int((time.monotonic() - shown) * 1000))
        result = service.submit_response(outcome.user_id, session.id, question.id,
                                         question.options[pick - 1], elapsed_ms)
        if result.is_correct:
            console.print("   [green]✓ Correct[/green]")
        else:
            console.print(f"   [red]✗ The answer is {result.correct_answer}[/red]")
        question = result.next_question
        number += 1
    return service.get_test(test.id)


def show_test_result(test: AdaptiveTest) -> None:
    perf = test.performance
    low, high = perf.ability_confidence_interval
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan", padding=(0, 1))
    table.add_column("Subject")
    table.add_column("Correct", justify="right")
    table.add_column("Accuracy", justify="right")
    for sp in perf.subject_performance.values():
        table.add_row(sp.subject_id.replace("_", " ").title(),
                      f"{sp.correct_answers}/{sp.questions_answered}", f"{sp.accuracy:.0f}%")
    console.print()
    console.print(Panel(
        table,
        title=f"[bold]{perf.correct_answers}/{perf.total_questions} correct · θ {perf.final_ability_estimate:+.2f}[/bold]",
        subtitle=f"[dim]95% interval {low:+.2f} … {high:+.2f}[/dim]",
        border_style="cyan",
    ))


# ─── Main ────────────────────────────────────────────────────────────────────

def main() -> None:
    configure_logging("WARNING")
    init_db()
    user_id = sys.argv[1] if len(sys.argv) > 1 else get_settings().app.demo_user_id

    console.print()
    console.print(Panel(
        "[bold]Exam Strategy Engine[/bold]\n"
        f"[dim]Onboarding for user [bold]{user_id}[/bold]  •  drafts are saved after every answer[/dim]",
        style="on dark_violet",
        expand=False,
    ))

    wizard = OnboardingWizard(user_id)
    if wizard.current_step > 1 and not Confirm.ask(
        f"Resume your saved draft at step {wizard.current_step} ({wizard.step_title})?", default=True,
    ):
        wizard.go_to_step(1)

    try:
        outcome = run_wizard(wizard)
        show_outcome(outcome)
        if Confirm.ask("Take a short adaptive check-in test?", default=True):
            try:
                show_test_result(run_quick_test(outcome))
            except NotFoundError as e:
                console.print(f"[yellow]{e}[/yellow]")

    except FormValidationError as e:
        console.print(f"\n[bold red]Please fix the following:[/bold red] {e}")
        sys.exit(1)

    except ExamPrepError as e:
        console.print(f"\n[bold red]{user_facing_message(e)}[/bold red]")
        console.print("[dim]Your answers are saved as a draft; run the demo again to retry.[/dim]")
        sys.exit(1)

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Your draft has been kept.[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
