"""
state_machine.py — Quiz step state machine.

Pure in-memory object; persistence lives in session_store.py.

Invariants:
  - 1 <= current_step <= TOTAL_STEPS at all times
  - merge() never drops a previously set answer (None values are ignored)
  - reset() returns to step 1 with no answers and no report
"""
from typing import Any, Optional, Union

from astroline.agents.quiz_agent.schemas import QuizAnswers

QUIZ_STEPS: tuple[str, ...] = (
    "gender",
    "birth_date",
    "birth_time",
    "birth_place",
    "relationship",
    "goals",
    "color",
    "element",
    "calculating",
    "astro_result",
    "palm_upload",
    "email",
    "paywall",
)
TOTAL_STEPS = len(QUIZ_STEPS)
FIRST_STEP = 1


class QuizSession:

    def __init__(
        self,
        current_step: int = FIRST_STEP,
        answers: Optional[QuizAnswers] = None,
        report_id: Optional[str] = None,
    ):
        if not FIRST_STEP <= current_step <= TOTAL_STEPS:
            raise ValueError(f"current_step must be within 1..{TOTAL_STEPS}, got {current_step}")
        self.current_step = current_step
        self.answers = answers if answers is not None else QuizAnswers()
        self.report_id = report_id

    # -- navigation --------------------------------------------------------

    def advance(self) -> None:
        self.current_step = min(self.current_step + 1, TOTAL_STEPS)

    def retreat(self) -> None:
        self.current_step = max(self.current_step - 1, FIRST_STEP)

    def jump_to(self, step: int) -> bool:
        """Move to `step`; out-of-range requests are ignored and return False."""
        if not FIRST_STEP <= step <= TOTAL_STEPS:
            return False
        self.current_step = step
        return True

    def reset(self) -> None:
        self.current_step = FIRST_STEP
        self.answers = QuizAnswers()
        self.report_id = None

    # -- answers -----------------------------------------------------------

    def merge(self, partial: Union[QuizAnswers, dict[str, Any]]) -> None:
        """Shallow merge of the supplied keys onto the stored answers."""
        if isinstance(partial, QuizAnswers):
            updates = partial.model_dump(exclude_unset=True, exclude_none=True)
        else:
            updates = {k: v for k, v in partial.items() if v is not None}
        if not updates:
            return
        merged = self.answers.model_dump(exclude_none=True)
        merged.update(updates)
        self.answers = QuizAnswers.model_validate(merged)

    def attach_report(self, report_id: str) -> None:
        self.report_id = report_id

    # -- derived -----------------------------------------------------------

    @property
    def step_name(self) -> str:
        return QUIZ_STEPS[self.current_step - 1]

    @property
    def is_complete(self) -> bool:
        return self.current_step == TOTAL_STEPS and self.report_id is not None

    def progress(self) -> dict[str, int]:
        return {
            "current": self.current_step,
            "total": TOTAL_STEPS,
            "percentage": round(self.current_step / TOTAL_STEPS * 100),
        }

    # -- serialization -----------------------------------------------------

    def to_state(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step,
            "answers": self.answers.model_dump(mode="json", exclude_none=True),
            "report_id": self.report_id,
        }

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> "QuizSession":
        return cls(
            current_step=int(state.get("current_step", FIRST_STEP)),
            answers=QuizAnswers.model_validate(state.get("answers") or {}),
            report_id=state.get("report_id"),
        )
