"""Pydantic models for signals, ranges and per-file results"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


SignalClass = Literal['critical', 'behavioral', 'maintainability']
Severity = Literal['blocker', 'warn', 'info']
Confidence = Literal['high', 'medium', 'low']
SignalCategory = Literal['complexity', 'side-effect', 'async', 'blast-radius', 'signature', 'core-impact']
EvidenceKind = Literal['regex', 'ast', 'history', 'graph', 'heuristic']
ActionType = Literal['test_command', 'review_request', 'runbook_link', 'mitigation_steps']
RangeType = Literal['added', 'modified', 'deleted']

DEFAULT_CONTEXT_LINES = 5


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using wire aliases, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ChangedRange(CamelModel):
    """A contiguous span of changed lines reported by a diff parser

    Attributes:
        start_line: First changed line (1-indexed)
        end_line: Last changed line (inclusive)
        type: Kind of change
        line_count: Number of lines in the span
    """

    start_line: int = Field(..., examples=[10], description='First changed line (1-indexed)')
    end_line: int = Field(..., examples=[14], description='Last changed line (inclusive)')
    type: RangeType = Field('modified', description='Kind of change')
    line_count: int | None = Field(None, examples=[5], description='Number of lines in the span')

    @model_validator(mode='after')
    def _fill_line_count(self):
        if self.line_count is None:
            self.line_count = self.end_line - self.start_line + 1
        return self


class Evidence(CamelModel):
    """How a signal was derived"""

    kind: EvidenceKind = 'regex'
    pattern: str | None = None
    details: dict[str, Any] | None = None


class ActionRecommendation(CamelModel):
    """Remediation guidance attached to a signal"""

    type: ActionType
    text: str
    steps: list[str] | None = None
    reviewers: list[str] | None = None
    command: str | None = None
    url: str | None = None


class Signal(CamelModel):
    """A single classified observation about a line or a file"""

    id: str = Field(..., examples=['network-fetch'])
    title: str = Field(..., examples=['Fetch Call'])
    signal_class: SignalClass = Field(..., alias='class', description='Coarse risk class')
    category: SignalCategory = Field(..., examples=['side-effect'])
    severity: Severity = Field(..., description='Derived from class and weight')
    confidence: Confidence = 'medium'
    weight: float = Field(..., examples=[0.5])
    file_path: str = Field(..., examples=['src/api/client.ts'])
    lines: list[int] = Field(default_factory=list, description='1-indexed line numbers')
    snippet: str | None = None
    reason: str = Field(..., examples=['Network fetch call - verify error handling and loading states'])
    evidence: Evidence = Field(default_factory=Evidence)
    actions: list[ActionRecommendation] | None = None
    tags: list[str] | None = None
    in_changed_range: bool = False
    meta: dict[str, Any] | None = None


class SignalSummary(CamelModel):
    """Counting rollup over a list of signals"""

    total: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict, description='Counts per signal id')
    changed_line_signals: int = Field(0, description='Signals touching a changed line')


class DetectorOptions(CamelModel):
    """Options accepted by every detector"""

    changed_ranges: list[ChangedRange] | None = None
    context_lines: int = DEFAULT_CONTEXT_LINES


class RiskScore(CamelModel):
    """Class-weighted risk score for a set of signals"""

    critical: float = 0.0
    behavioral: float = 0.0
    maintainability: float = 0.0
    total: float = 0.0
    max_severity: Severity = 'info'
    confidence: float = 0.0
    level: Literal['LOW', 'MED', 'HIGH', 'CRITICAL'] = 'LOW'
    reasons: list[str] = Field(default_factory=list)


class FileSignals(CamelModel):
    """Signals detected for one file, plus their rollups"""

    path: str
    profile: str = Field('generic', description='Detector that produced the signals')
    signals: list[Signal] = Field(default_factory=list)
    summary: SignalSummary = Field(default_factory=SignalSummary)
    risk: RiskScore | None = None

    def to_cli(self, colorize: bool = False) -> str:
        """Format file signals for CLI output."""
        BOLD = '\033[1m'
        RED = '\033[31m'
        YELLOW = '\033[33m'
        CYAN = '\033[36m'
        GREY = '\033[90m'
        RESET = '\033[0m'
        severity_colors = {'blocker': RED, 'warn': YELLOW, 'info': GREY}

        lines = []

        if colorize:
            lines.append(f'{BOLD}{CYAN}{self.path}{RESET} {GREY}[{self.profile}]{RESET}')
        else:
            lines.append(f'{self.path} [{self.profile}]')

        if not self.signals:
            lines.append('  No signals')
            return '\n'.join(lines)

        for signal in self.signals:
            where = ','.join(str(n) for n in signal.lines[:5]) or '-'
            marker = '*' if signal.in_changed_range else ' '
            severity = signal.severity.upper()
            if colorize:
                color = severity_colors.get(signal.severity, RESET)
                severity = f'{color}{severity:<7}{RESET}'
            else:
                severity = f'{severity:<7}'
            lines.append(f'  {marker} {severity} {signal.id} (line {where}): {signal.reason}')

        summary = self.summary
        lines.append(
            f'  Total: {summary.total} signals, {summary.changed_line_signals} in changed lines'
        )
        if self.risk is not None:
            lines.append(f'  Risk: {self.risk.total:.1f}/10 ({self.risk.level})')
            for reason in self.risk.reasons:
                lines.append(f'    {reason}')

        return '\n'.join(lines)


class ScanResult(CamelModel):
    """Outcome of analysing a batch of paths"""

    files: list[FileSignals] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list, description='Paths that could not be read as text')
    time: float = Field(0.0, description='Elapsed seconds')

    def signals(self) -> list[Signal]:
        return [signal for file_signals in self.files for signal in file_signals.signals]
