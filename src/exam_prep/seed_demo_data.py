"""
seed_demo_data.py
─────────────────
Populate the document store with the system question bank and one demo
learner (GATE CSE, part-way through preparation) so every page has
something to show on a fresh install.

Run once (safe to re-run — documents are overwritten by id):
    python -m exam_prep.seed_demo_data
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from exam_prep.adaptive_testing_service import AdaptiveTestingService
from exam_prep.config import configure_logging, get_settings
from exam_prep.database import create_user, init_db, save_syllabus_for_course, update_topic_progress
from exam_prep.journey_service import JourneyService
from exam_prep.mock_test_logger import MockSection, MockTestForm, log_mock_test
from exam_prep.models import (
    AdaptiveQuestion,
    BloomsLevel,
    DifficultyLevel,
    GoalUpdate,
    JourneyStatus,
    PersonaType,
    TopicPerformance,
    get_exam_by_id,
    utcnow,
)

logger = logging.getLogger(__name__)

B, I, A, E = (DifficultyLevel.BEGINNER, DifficultyLevel.INTERMEDIATE,
              DifficultyLevel.ADVANCED, DifficultyLevel.EXPERT)


# ─────────────────────────────────────────────────────────────────────────────
# Helper: keeps the question table below readable
# ─────────────────────────────────────────────────────────────────────────────

def _q(
    qid: str,
    subject: str,
    topic: str,
    difficulty: DifficultyLevel,
    question: str,
    options: list[str],
    correct: int,
    explanation: str,
    blooms: BloomsLevel = BloomsLevel.UNDERSTAND,
    discrimination: float = 1.0,
) -> AdaptiveQuestion:
    return AdaptiveQuestion(
        id=qid,
        question=question,
        options=options,
        correct_answer=options[correct],
        explanation=explanation,
        difficulty=difficulty,
        discrimination_index=discrimination,
        guessing_parameter=round(1 / len(options), 2),
        subject=subject,
        topic=topic,
        topics=[topic],
        blooms_level=blooms,
        time_limit=90,
        created_by="system",
        tags=["seed"],
    )


QUESTION_BANK: list[AdaptiveQuestion] = [
    # ── GATE CSE · Data Structures & Algorithms ──────────────────────────────
    _q("dsa-001", "data_structures", "arrays_lists", B,
       "What is the time complexity of accessing the i-th element of an array?",
       ["O(1)", "O(log n)", "O(n)", "O(n log n)"], 0,
       "Arrays support random access by index arithmetic.", BloomsLevel.REMEMBER),
    _q("dsa-002", "data_structures", "arrays_lists", I,
       "Which operation is O(1) on a singly linked list given only the head pointer?",
       ["Insert at tail", "Insert at head", "Delete the last node", "Find the middle node"], 1,
       "Only head insertion avoids walking the list."),
    _q("dsa-003", "data_structures", "trees_graphs", I,
       "An in-order traversal of a binary search tree yields keys in which order?",
       ["Level order", "Reverse sorted", "Sorted ascending", "Insertion order"], 2,
       "In-order visits left subtree, node, right subtree.", BloomsLevel.APPLY),
    _q("dsa-004", "data_structures", "trees_graphs", A,
       "Dijkstra's algorithm can give wrong answers when the graph has…",
       ["Cycles", "Negative edge weights", "More than V edges", "Self loops of weight 0"], 1,
       "Greedy finalisation assumes distances never decrease later.", BloomsLevel.ANALYZE, 1.3),
    _q("dsa-005", "data_structures", "dynamic_programming", A,
       "The 0/1 knapsack DP over n items and capacity W runs in…",
       ["O(nW)", "O(2^n)", "O(n log W)", "O(n + W)"], 0,
       "One table cell per (item, capacity) pair.", BloomsLevel.APPLY, 1.2),
    _q("dsa-006", "data_structures", "dynamic_programming", E,
       "Matrix-chain multiplication order is found by DP in which time?",
       ["O(n^2)", "O(n^3)", "O(2^n)", "O(n log n)"], 1,
       "O(n^2) subproblems, each choosing among O(n) split points.", BloomsLevel.EVALUATE, 1.4),

    # ── GATE CSE · Operating Systems ─────────────────────────────────────────
    _q("os-001", "operating_systems", "process_scheduling", B,
       "Which scheduling algorithm can cause starvation of long jobs?",
       ["FCFS", "Round Robin", "Shortest Job First", "FIFO with aging"], 2,
       "Short jobs keep jumping ahead of long ones.", BloomsLevel.REMEMBER),
    _q("os-002", "operating_systems", "process_scheduling", I,
       "Round Robin with a very large time quantum behaves like…",
       ["SJF", "FCFS", "Priority scheduling", "Multilevel feedback"], 1,
       "Every process finishes within its first quantum."),
    _q("os-003", "operating_systems", "memory_management", I,
       "Belady's anomaly can occur with which page-replacement policy?",
       ["LRU", "Optimal", "FIFO", "LFU with aging"], 2,
       "FIFO is not a stack algorithm.", BloomsLevel.REMEMBER),
    _q("os-004", "operating_systems", "memory_management", A,
       "With 4 KB pages and a 32-bit virtual address, how many bits form the page offset?",
       ["10", "12", "20", "22"], 1,
       "4 KB = 2^12 bytes.", BloomsLevel.APPLY, 1.2),
    _q("os-005", "operating_systems", "deadlocks", A,
       "Which Coffman condition does ordering resource acquisition break?",
       ["Mutual exclusion", "Hold and wait", "No preemption", "Circular wait"], 3,
       "A global order makes a cycle of waits impossible.", BloomsLevel.ANALYZE),
    _q("os-006", "operating_systems", "deadlocks", E,
       "The Banker's algorithm is an example of deadlock…",
       ["Prevention", "Avoidance", "Detection", "Recovery"], 1,
       "It refuses requests that would leave the system unsafe.", BloomsLevel.EVALUATE, 1.3),

    # ── GATE CSE · DBMS ──────────────────────────────────────────────────────
    _q("db-001", "dbms", "er_model", B,
       "A relation in 2NF must first be in…",
       ["1NF", "3NF", "BCNF", "4NF"], 0,
       "Normal forms are cumulative.", BloomsLevel.REMEMBER),
    _q("db-002", "dbms", "er_model", I,
       "BCNF requires that for every non-trivial FD X → Y, X is a…",
       ["Prime attribute", "Superkey", "Foreign key", "Candidate key subset"], 1,
       "Every determinant must be a superkey."),
    _q("db-003", "dbms", "sql_queries", I,
       "Which SQL clause filters groups after aggregation?",
       ["WHERE", "HAVING", "GROUP BY", "ORDER BY"], 1,
       "WHERE filters rows, HAVING filters groups.", BloomsLevel.REMEMBER),
    _q("db-004", "dbms", "transactions", A,
       "Strict two-phase locking guarantees schedules that are…",
       ["Only view serialisable", "Conflict serialisable and cascadeless",
        "Deadlock free", "Recoverable but not serialisable"], 1,
       "Holding write locks to commit prevents dirty reads.", BloomsLevel.ANALYZE, 1.3),
    _q("db-005", "dbms", "transactions", E,
       "In a precedence graph, a schedule is conflict serialisable iff the graph is…",
       ["Connected", "Acyclic", "Bipartite", "A tree"], 1,
       "Any topological order gives an equivalent serial schedule.", BloomsLevel.EVALUATE),

    # ── GATE CSE · Computer Networks ─────────────────────────────────────────
    _q("cn-001", "computer_networks", "tcp_ip", B,
       "Which layer does IP belong to?",
       ["Transport", "Network", "Data link", "Application"], 1,
       "IP routes packets between hosts.", BloomsLevel.REMEMBER),
    _q("cn-002", "computer_networks", "tcp_ip", I,
       "TCP's three-way handshake exchanges which segments?",
       ["SYN, ACK, FIN", "SYN, SYN-ACK, ACK", "SYN, FIN, ACK", "ACK, SYN, RST"], 1,
       "Client SYN, server SYN-ACK, client ACK."),
    _q("cn-003", "computer_networks", "routing", A,
       "Distance-vector routing suffers from which problem?",
       ["Count to infinity", "Flooding storms", "Head-of-line blocking", "Silly window syndrome"], 0,
       "Bad news propagates slowly between neighbours.", BloomsLevel.ANALYZE),
    _q("cn-004", "computer_networks", "routing", E,
       "A /22 subnet contains how many usable host addresses?",
       ["1022", "1024", "510", "2046"], 0,
       "2^10 addresses minus network and broadcast.", BloomsLevel.APPLY, 1.4),

    # ── GATE CSE · Engineering Mathematics ───────────────────────────────────
    _q("em-001", "engineering_maths", "discrete_maths", B,
       "How many edges does a tree with n vertices have?",
       ["n", "n - 1", "n + 1", "2n"], 1,
       "A tree is a minimally connected graph.", BloomsLevel.REMEMBER),
    _q("em-002", "engineering_maths", "probability", I,
       "Two fair dice are rolled. What is P(sum = 7)?",
       ["1/6", "1/12", "1/36", "7/36"], 0,
       "6 favourable outcomes out of 36.", BloomsLevel.APPLY),
    _q("em-003", "engineering_maths", "probability", A,
       "The variance of a Bernoulli(p) variable is…",
       ["p", "p^2", "p(1 - p)", "1 - p"], 2,
       "E[X^2] - E[X]^2 = p - p^2."),

    # ── SQL Mastery ──────────────────────────────────────────────────────────
    _q("sql-001", "sql_basics", "select_filtering", B,
       "Which keyword removes duplicate rows from a SELECT result?",
       ["UNIQUE", "DISTINCT", "DIFFERENT", "SINGLE"], 1,
       "SELECT DISTINCT collapses identical rows.", BloomsLevel.REMEMBER),
    _q("sql-002", "sql_basics", "select_filtering", I,
       "What does `WHERE col = NULL` return?",
       ["Rows where col is NULL", "No rows", "All rows", "An error"], 1,
       "Comparisons with NULL are unknown; use IS NULL.", BloomsLevel.UNDERSTAND, 1.2),
    _q("sql-003", "sql_basics", "joins", I,
       "A LEFT JOIN keeps which unmatched rows?",
       ["From the right table", "From the left table", "From both tables", "None"], 1,
       "Unmatched left rows appear with NULLs on the right."),
    _q("sql-004", "advanced_sql", "window_functions", A,
       "Which function gives tied rows the same rank without gaps afterwards?",
       ["ROW_NUMBER()", "RANK()", "DENSE_RANK()", "NTILE()"], 2,
       "DENSE_RANK does not skip numbers after ties.", BloomsLevel.ANALYZE),
    _q("sql-005", "advanced_sql", "ctes", A,
       "A recursive CTE must contain…",
       ["An anchor member and a recursive member joined by UNION ALL", "A window function",
        "A GROUP BY clause", "A correlated subquery"], 0,
       "The anchor seeds the recursion; the recursive member references the CTE."),
    _q("sql-006", "advanced_sql", "query_optimisation", E,
       "A composite index on (a, b) can serve which predicate with an index seek?",
       ["WHERE b = 1", "WHERE a = 1", "WHERE b > 1 AND c = 2", "WHERE c = 1"], 1,
       "Only a leftmost prefix of the index can be sought.", BloomsLevel.EVALUATE, 1.4),

    # ── UPSC CSE Prelims ─────────────────────────────────────────────────────
    _q("upsc-001", "modern_history", "freedom_struggle", B,
       "The Non-Cooperation Movement was launched in which year?",
       ["1905", "1920", "1930", "1942"], 1,
       "Launched by Gandhi in 1920 and withdrawn after Chauri Chaura.", BloomsLevel.REMEMBER),
    _q("upsc-002", "modern_history", "british_rule", I,
       "The Permanent Settlement of 1793 was introduced by…",
       ["Lord Cornwallis", "Lord Wellesley", "Lord Dalhousie", "Warren Hastings"], 0,
       "Cornwallis fixed land revenue with zamindars in Bengal."),
    _q("upsc-003", "indian_polity", "constitution_basics", I,
       "Which Part of the Constitution contains the Fundamental Rights?",
       ["Part II", "Part III", "Part IV", "Part IVA"], 1,
       "Articles 12 to 35 form Part III.", BloomsLevel.REMEMBER),
    _q("upsc-004", "indian_polity", "judiciary", A,
       "Writ of certiorari is issued to…",
       ["Release a detained person", "Quash an order of a lower court",
        "Command a public official to act", "Prevent usurpation of public office"], 1,
       "Certiorari transfers and quashes orders of inferior courts.", BloomsLevel.UNDERSTAND, 1.2),
    _q("upsc-005", "geography", "physical_geography", I,
       "Which layer of the atmosphere contains the ozone layer?",
       ["Troposphere", "Stratosphere", "Mesosphere", "Thermosphere"], 1,
       "Ozone concentration peaks in the lower stratosphere.", BloomsLevel.REMEMBER),
    _q("upsc-006", "geography", "indian_geography", A,
       "The Western Ghats receive heavy rainfall mainly due to…",
       ["Retreating monsoon", "Orographic lift of the south-west monsoon",
        "Western disturbances", "Cyclonic depressions"], 1,
       "Moist winds rise over the Ghats and cool.", BloomsLevel.ANALYZE),
]


def seed_question_bank() -> int:
    return AdaptiveTestingService.save_questions(QUESTION_BANK)


# ─────────────────────────────────────────────────────────────────────────────
# Demo learner: GATE CSE, six weeks in
# ─────────────────────────────────────────────────────────────────────────────

def seed_demo_user(user_id: Optional[str] = None) -> str:
    user_id = user_id or get_settings().app.demo_user_id
    exam = get_exam_by_id("gate_cse")
    now = utcnow()
    exam_date = now + timedelta(days=120)

    create_user(user_id, {
        "display_name": "Demo Learner",
        "email": "demo@example.com",
        "selected_exam_id": exam.id,
        "exam_date": exam_date,
        "current_exam": {"id": exam.id, "name": exam.name, "target_date": exam_date},
        "onboarding_completed": True,
        "user_persona": {"type": PersonaType.WORKING_PROFESSIONAL.value},
        "preferences": {"daily_study_goal_minutes": 180, "preferred_study_time": "evening"},
    })
    save_syllabus_for_course(user_id, exam.id, exam.default_syllabus)

    mastery = {
        "arrays_lists": (85, 3), "trees_graphs": (62, 2), "dynamic_programming": (35, 1),
        "process_scheduling": (74, 2), "memory_management": (48, 1), "er_model": (90, 4),
    }
    for topic_id, (score, revisions) in mastery.items():
        update_topic_progress(user_id, topic_id, {
            "mastery_score": score,
            "revision_count": revisions,
            "total_study_time": revisions * 90,
            "last_revised": now - timedelta(days=revisions + 1),
            "next_revision": now - timedelta(hours=6) if score < 70 else now + timedelta(days=5),
        }, exam.id)

    log_mock_test(user_id, MockTestForm(
        platform="Made Easy",
        test_name="GATE CSE Full Mock 1",
        stage="gate",
        date=now - timedelta(days=7),
        sections=[
            MockSection("general_aptitude", "General Aptitude", score=11, max_score=15, time_minutes=25),
            MockSection("technical", "Technical Section", score=52, max_score=85, time_minutes=150),
        ],
        concept_gaps=20, careless_errors=8, intelligent_guesses=4, time_pressures=5,
        topic_performance=[
            TopicPerformance(topic_id="trees_graphs", topic_name="Trees and Graphs",
                             questions_asked=6, questions_correct=5, questions_wrong=1, accuracy=0.83),
            TopicPerformance(topic_id="memory_management", topic_name="Memory Management",
                             questions_asked=5, questions_correct=2, questions_wrong=3, accuracy=0.4),
        ],
        confidence=3, anxiety=3, focus=4,
        feedback="Lost time on DP questions; revise memoisation patterns.",
        action_items=["Two DP problems daily", "Revise paging numericals"],
    ), exam.id)

    journeys = JourneyService()
    journey = journeys.create_journey_from_template(user_id, "template-1", exam_id=exam.id)
    journeys.update_journey_status(journey.id, JourneyStatus.ACTIVE)
    journeys.update_journey_progress(journey.id, [
        GoalUpdate(goal_id=journey.custom_goals[0].id, new_value=55),
        GoalUpdate(goal_id=journey.custom_goals[1].id, new_value=3),
    ])

    logger.info("Seeded demo user %s", user_id)
    return user_id


def main() -> None:
    configure_logging()
    init_db()
    count = seed_question_bank()
    user_id = seed_demo_user()
    print(f"✅ Seeded {count} questions and demo user '{user_id}'.")


if __name__ == "__main__":
    main()
