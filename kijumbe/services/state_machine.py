from enum import Enum
from typing import Optional


class Flow(str, Enum):
    REGISTRATION = "registration"
    CONTRIBUTION = "contribute"
    GROUP_CREATION = "create_group"
    GROUP_JOINING = "join_group"
    HELP = "help"


class Step(str, Enum):
    ROLE_SELECTION = "role_selection"
    NAME_INPUT = "name_input"
    AMOUNT_INPUT = "amount_input"
    GROUP_NAME = "group_name"
    CONTRIBUTION_AMOUNT = "contribution_amount"
    MEMBER_COUNT = "member_count"
    CODE_INPUT = "code_input"
    TOPIC_SELECTION = "topic_selection"


class StepOutcome(str, Enum):
    AWAIT_INPUT = "await_input"
    COMPLETE = "complete"
    REDISPATCH = "redispatch"


FLOW_STEPS: dict[Flow, tuple[Step, ...]] = {
    Flow.REGISTRATION: (Step.ROLE_SELECTION, Step.NAME_INPUT),
    Flow.CONTRIBUTION: (Step.AMOUNT_INPUT,),
    Flow.GROUP_CREATION: (Step.GROUP_NAME, Step.CONTRIBUTION_AMOUNT, Step.MEMBER_COUNT),
    Flow.GROUP_JOINING: (Step.CODE_INPUT,),
    Flow.HELP: (Step.TOPIC_SELECTION,),
}

# Steps only move forward inside their own flow
VALID_TRANSITIONS: dict[tuple[Flow, Step], list[Step]] = {
    (flow, step): list(steps[index + 1 : index + 2])
    for flow, steps in FLOW_STEPS.items()
    for index, step in enumerate(steps)
}


class InvalidTransitionError(Exception):
    def __init__(self, flow: Flow, from_step: Optional[Step], to_step: Step):
        self.flow = flow
        self.from_step = from_step
        self.to_step = to_step
        from_value = from_step.value if from_step else "-"
        super().__init__(f"Invalid transition in {flow.value}: {from_value} -> {to_step.value}")


def first_step(flow: Flow) -> Step:
    return FLOW_STEPS[flow][0]


def can_transition(flow: Flow, from_step: Step, to_step: Step) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get((flow, from_step), [])
    return to_step in allowed


def transition(flow: Flow, from_step: Step, to_step: Step) -> Step:
    """Perform step transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(flow, from_step, to_step):
        raise InvalidTransitionError(flow, from_step, to_step)
    return to_step
