"""
Result values returned by workflow steps.
"""
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ProvisionStatus(str, Enum):
    """
    Outcome of an idempotent ensure call.
    """
    CREATED = "created"
    EXISTS = "exists"
    SUBNET_MISMATCH = "subnet-mismatch"


class NetworkResult(BaseModel):
    """
    Outcome of ensuring a network.

    ``SUBNET_MISMATCH`` means the network already existed with a subnet other
    than the requested one. It was left untouched.
    """
    name: str
    status: ProvisionStatus
    requested_subnet: Optional[str] = None
    live_subnets: List[str] = []

    @property
    def mismatched(self) -> bool:
        return self.status == ProvisionStatus.SUBNET_MISMATCH


class DirectoryResult(BaseModel):
    created: List[str] = []
    existing: List[str] = []


class OutcomeStatus(str, Enum):
    OK = "ok"
    TOLERATED = "tolerated"
    SKIPPED = "skipped"


class StepOutcome(BaseModel):
    """
    A labeled, non-fatal outcome of a single workflow step.
    """
    step: str
    status: OutcomeStatus = OutcomeStatus.OK
    note: str = ""

    def __str__(self) -> str:
        suffix = f": {self.note}" if self.note else ""
        return f"[{self.step}] {self.status.value}{suffix}"


class TeardownReport(BaseModel):
    outcomes: List[StepOutcome] = []
    data_deleted: bool = False

    def add(self, step: str, status: OutcomeStatus = OutcomeStatus.OK, note: str = "") -> StepOutcome:
        outcome = StepOutcome(step=step, status=status, note=note)
        self.outcomes.append(outcome)
        return outcome

    @property
    def tolerated(self) -> List[StepOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.TOLERATED]


class ProbeResult(BaseModel):
    """
    Outcome of a successful readiness wait.
    """
    service: str
    attempts: int
    output: str = ""


class BringUpResult(BaseModel):
    """
    What the sequencer learned while starting the stack.
    """
    started: List[str] = []
    addresses: Dict[str, str] = Field(default_factory=dict)
    probes: Dict[str, ProbeResult] = Field(default_factory=dict)


class PatchResult(BaseModel):
    settings_file: str
    lines_before: int
    lines_removed: int
    matched_rules: List[str] = []

    @property
    def lines_after(self) -> int:
        return self.lines_before - self.lines_removed


class InstallReport(BaseModel):
    network: Optional[NetworkResult] = None
    directories: Optional[DirectoryResult] = None
    bring_up: Optional[BringUpResult] = None
    patch: Optional[PatchResult] = None
    units: List[str] = []
