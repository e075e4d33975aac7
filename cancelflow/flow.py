"""
cancelflow.flow
===============
The cancellation wizard itself, declared as data and validated into a
`StepGraph` once at import.

  got-job ─┬─ yes ──────────────► job-source → help-feedback → visa-status(-no) → all-done(-visa-support)
           └─ no ─┬─ variant A ─► usage-feedback → cancel-reason → cancel-confirmation
                  └─ variant B ─► downsell-offer-check ─┬─ no thanks ─► usage-feedback …
                                                        └─ $10 off ───► continue-subscription → apply-job

Swap the whole thing for a JSON file with CANCELFLOW_FLOW_PATH.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from cancelflow.config import get_settings
from cancelflow.schema import StepGraph

log = logging.getLogger(__name__)

LONG_TEXT_ERROR = "Please enter at least 25 characters so we can understand your feedback*"

_COUNTS = [
    {"value": "0", "label": "0"},
    {"value": "1-5", "label": "1-5"},
    {"value": "6-20", "label": "6-20"},
    {"value": "20+", "label": "20+"},
]
_INTERVIEWS = [
    {"value": "0", "label": "0"},
    {"value": "1-2", "label": "1-2"},
    {"value": "3-5", "label": "3-5"},
    {"value": "5+", "label": "5+"},
]
_YES_NO = [{"value": "yes", "label": "Yes"}, {"value": "no", "label": "No"}]


def _usage_questions(suffix: str = "") -> List[Dict[str, Any]]:
    return [
        {"id": f"jobsAppliedViaMM{suffix}", "type": "choice", "options": _COUNTS,
         "text": "How many roles did you apply for through Migrate Mate?"},
        {"id": f"emailsDirect{suffix}", "type": "choice", "options": _COUNTS,
         "text": "How many companies did you email directly?"},
        {"id": f"interviewsDone{suffix}", "type": "choice", "options": _INTERVIEWS,
         "text": "How many different companies did you interview with?"},
    ]


def _visa_question() -> Dict[str, Any]:
    return {
        "id": "companyVisaSupport",
        "type": "single-select-with-followup",
        "text": "Is your company providing an immigration lawyer to help with your visa?",
        "options": _YES_NO,
        "follow_ups": [
            {"value": "yes", "input_type": "short-text", "required": True,
             "text": "What visa will you be applying for?"},
            {"value": "no", "input_type": "short-text", "required": True,
             "text": "We can connect you with one of our trusted partners. "
                     "Which visa would you like to apply for?"},
        ],
    }


def _reason_follow_up(value: str, text: str) -> Dict[str, Any]:
    return {"value": value, "input_type": "long-text", "required": True,
            "text": text, "error_message": LONG_TEXT_ERROR}


CANCELLATION_FLOW_SPEC: Dict[str, Any] = {
    "initial_step_id": "got-job",
    "decision": {
        "step_id": "got-job",
        "answer_key": "gotJob",
        "routes": {
            "yes": {"A": "job-source", "B": "job-source"},
            "no":  {"A": "usage-feedback", "B": "downsell-offer-check"},
        },
    },
    "steps": [
        # ── opening decision ─────────────────────────────────────────────
        {
            "id": "got-job",
            "number": 1,
            "heading": "Hey mate, quick one before you go.",
            "heading2": "Have you found a job yet?",
            "description": "Whatever your answer, we just want to help you take the next step.",
            "branch_key": "gotJob",
            "buttons": [
                {"id": "got-job-yes", "label": "Yes, I've found a job",
                 "action": "branch", "next_step_id": "job-source", "value": "yes"},
                {"id": "got-job-no", "label": "Not yet - I'm still looking",
                 "action": "branch", "next_step_id": "usage-feedback", "value": "no"},
            ],
        },
        # ── found a job ──────────────────────────────────────────────────
        {
            "id": "job-source",
            "number": 1,
            "heading": "Congrats on the new role!",
            "branch_key": "jobViaMM",
            "prev_step_id": "got-job",
            "counts_toward_progress": True,
            "questions": [
                {"id": "jobViaMM", "type": "choice", "options": _YES_NO,
                 "text": "Did you find this job with Migrate Mate?"},
                *_usage_questions(),
            ],
            "buttons": [
                {"id": "continue", "label": "Continue", "action": "advance",
                 "next_step_id": "help-feedback",
                 "disabled_until": ["jobViaMM", "jobsAppliedViaMM", "emailsDirect", "interviewsDone"]},
            ],
        },
        {
            "id": "help-feedback",
            "number": 2,
            "heading": "What's one thing you wish we could've helped you with?",
            "description": "We're always looking to improve, your thoughts can help us "
                           "make Migrate Mate more useful for others.",
            "prev_step_id": "job-source",
            "counts_toward_progress": True,
            "questions": [
                {"id": "helpFeedback", "type": "long-text", "error_message": LONG_TEXT_ERROR},
            ],
            "buttons": [
                {"id": "continue", "label": "Continue", "action": "advance",
                 "next_step_id": "visa-status", "disabled_until": ["helpFeedback"]},
            ],
            "conditional_branches": [
                {"condition": {"step_id": "job-source", "question_id": "jobViaMM", "value": "yes"},
                 "next_step_id": "visa-status"},
                {"condition": {"step_id": "job-source", "question_id": "jobViaMM", "value": "no"},
                 "next_step_id": "visa-status-no"},
            ],
        },
        {
            "id": "visa-status",
            "number": 3,
            "heading": "We helped you land the job, now let's help you secure your visa.",
            "branch_key": "visaHelp",
            "prev_step_id": "help-feedback",
            "counts_toward_progress": True,
            "questions": [_visa_question()],
            "buttons": [
                {"id": "continue", "label": "Complete cancellation", "action": "advance",
                 "next_step_id": "all-done", "disabled_until": ["companyVisaSupport"]},
            ],
            "conditional_branches": [
                {"condition": {"step_id": "visa-status", "question_id": "companyVisaSupport", "value": "yes"},
                 "next_step_id": "all-done"},
                {"condition": {"step_id": "visa-status", "question_id": "companyVisaSupport", "value": "no"},
                 "next_step_id": "all-done-visa-support"},
            ],
        },
        {
            "id": "visa-status-no",
            "number": 3,
            "heading": "You landed the job! That's what we live for.",
            "sub_heading": "Even if it wasn't through Migrate Mate, let us help get your visa sorted.",
            "branch_key": "visaHelp",
            "prev_step_id": "help-feedback",
            "counts_toward_progress": True,
            "questions": [_visa_question()],
            "buttons": [
                {"id": "continue", "label": "Complete cancellation", "action": "advance",
                 "next_step_id": "all-done-visa-support", "disabled_until": ["companyVisaSupport"]},
            ],
            "conditional_branches": [
                {"condition": {"step_id": "visa-status-no", "question_id": "companyVisaSupport", "value": "yes"},
                 "next_step_id": "all-done"},
                {"condition": {"step_id": "visa-status-no", "question_id": "companyVisaSupport", "value": "no"},
                 "next_step_id": "all-done-visa-support"},
            ],
        },
        {
            "id": "all-done",
            "number": 5,
            "heading": "All done, your cancellation's been processed.",
            "description": "We're stoked to hear you've landed a job and sorted your visa.",
            "prev_step_id": "visa-status",
            "buttons": [{"id": "finish", "label": "Finish", "action": "close"}],
        },
        {
            "id": "all-done-visa-support",
            "number": 6,
            "heading": "Your cancellation's all sorted, mate, no more charges.",
            "prev_step_id": "visa-status-no",
            "buttons": [{"id": "finish-visa-support", "label": "Finish", "action": "close"}],
        },
        # ── still looking ────────────────────────────────────────────────
        {
            "id": "downsell-offer-check",
            "number": 1,
            "heading": "We built this to help you land the job, this makes it a little easier.",
            "sub_heading": "We've been there and we're here to help you.",
            "branch_key": "offerDecision",
            "prev_step_id": "got-job",
            "counts_toward_progress": True,
            "offer_button": {"id": "discount-offer", "label": "Get $10 off", "action": "advance",
                             "next_step_id": "continue-subscription", "accepts_offer": True},
            "buttons": [
                {"id": "continue-cancellation", "label": "No thanks", "action": "advance",
                 "next_step_id": "usage-feedback", "accepts_offer": False},
            ],
        },
        {
            "id": "usage-feedback",
            "number": 2,
            "heading": "Help us understand how you were using Migrate Mate.",
            "prev_step_id": "got-job",
            "counts_toward_progress": True,
            "questions": _usage_questions("_NoJob"),
            "buttons": [
                {"id": "continue", "label": "Continue", "action": "advance",
                 "next_step_id": "cancel-reason",
                 "disabled_until": ["jobsAppliedViaMM_NoJob", "emailsDirect_NoJob", "interviewsDone_NoJob"]},
            ],
        },
        {
            "id": "cancel-reason",
            "number": 3,
            "heading": "What's the main reason for cancelling?",
            "description": "Please take a minute to let us know why:",
            "prev_step_id": "usage-feedback",
            "counts_toward_progress": True,
            "questions": [
                {
                    "id": "cancelReason",
                    "type": "single-select-with-followup",
                    "text": "What's the main reason you're cancelling?",
                    "options": [
                        {"value": "too-expensive", "label": "Too expensive"},
                        {"value": "platform-not-helpful", "label": "Platform not helpful"},
                        {"value": "not-enough-jobs", "label": "Not enough relevant jobs"},
                        {"value": "decided-not-to-move", "label": "Decided not to move"},
                        {"value": "other", "label": "Other"},
                    ],
                    "follow_ups": [
                        {"value": "too-expensive", "input_type": "numeric", "required": True,
                         "min_value": 0,
                         "text": "What's the maximum you'd be willing to pay per month?"},
                        _reason_follow_up("platform-not-helpful",
                                          "Please share why the platform wasn't helpful for you"),
                        _reason_follow_up("not-enough-jobs",
                                          "Please share details about what types of jobs you were looking for"),
                        _reason_follow_up("decided-not-to-move",
                                          "Please share why you decided not to move"),
                        _reason_follow_up("other", "Please specify your reason for cancelling"),
                    ],
                },
            ],
            "buttons": [
                {"id": "continue", "label": "Complete Cancellation", "action": "advance",
                 "next_step_id": "cancel-confirmation", "disabled_until": ["cancelReason"]},
            ],
        },
        {
            "id": "cancel-confirmation",
            "number": 5,
            "heading": "Sorry to see you go, mate.",
            "sub_heading": "Thanks for being with us, and you're always welcome back.",
            "description": "Your subscription is set to end on {{endDate}}.",
            "prev_step_id": "cancel-reason",
            "questions": [
                {"id": "cancelComplete", "type": "informational",
                 "text": "Cancellation completed successfully."},
            ],
            "buttons": [{"id": "confirm-cancel", "label": "Back to Jobs", "action": "close"}],
        },
        {
            "id": "continue-subscription",
            "number": 4,
            "heading": "Great choice, mate!",
            "heading2": "You're still on the path to your dream role. Let's make it happen together!",
            "note": "You can cancel anytime before then.",
            "prev_step_id": "downsell-offer-check",
            "show_progress": False,
            "buttons": [
                {"id": "continue", "label": "Land your dream role", "action": "advance",
                 "next_step_id": "apply-job"},
            ],
        },
        {
            "id": "apply-job",
            "number": 5,
            "heading": "Awesome, we've pulled together a few roles that seem like a great fit for you.",
            "description": "Take a look and see what sparks your interest.",
            "prev_step_id": "continue-subscription",
            "show_progress": False,
            "buttons": [{"id": "finish", "label": "Land your dream role", "action": "close"}],
        },
    ],
}

CANCELLATION_FLOW: StepGraph = StepGraph.model_validate(CANCELLATION_FLOW_SPEC)


def load_step_graph(path: str | Path) -> StepGraph:
    """Read and validate a step graph from a JSON file."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    graph = StepGraph.model_validate(raw)
    log.info("Loaded flow from %s (%d steps)", path, len(graph.steps))
    return graph


@lru_cache(maxsize=1)
def default_graph() -> StepGraph:
    path = get_settings().flow_path
    return load_step_graph(path) if path else CANCELLATION_FLOW


# ────────────────────────────────────────────────────────────────────────
#  Smoke test (python -m cancelflow.flow)
# ────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":  # pragma: no cover
    from cancelflow.config import configure_logging

    configure_logging()
    graph = default_graph()
    for i, s in enumerate(graph.steps):
        targets = [b.next_step_id for b in s.all_buttons() if b.next_step_id]
        print(f"{i:>2}  {s.id:<24} prev={s.prev_step_id or '-':<22} → {', '.join(targets) or 'close'}")
