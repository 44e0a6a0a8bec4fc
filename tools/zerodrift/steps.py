"""Static step and preset registries for the zero-drift validation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, Tuple


class UsageError(ValueError):
    """Invalid selection detected before any command is spawned."""


class CacheStrategy(str, Enum):
    NONE = "none"
    MINIMAL = "minimal"
    SMART = "smart"
    CONFIG_AWARE = "config-aware"


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class StepId(str, Enum):
    LINT = "lint"
    TYPE_CHECK = "type-check"
    TEST = "test"
    BUILD = "build"


class PresetId(str, Enum):
    QUICK = "quick"
    CI = "ci"
    PRE_COMMIT = "pre-commit"
    COMPLIANCE = "compliance"


@dataclass(frozen=True)
class ValidationStep:
    """One quality-gate command and the files that define its configuration."""

    step_id: StepId
    name: str
    command: str
    config_patterns: Tuple[str, ...]
    description: str
    remediation: str
    critical: bool = True
    cache_strategy: CacheStrategy = CacheStrategy.CONFIG_AWARE


@dataclass(frozen=True)
class ExtraCommand:
    """Command appended to a preset once every selected step has passed."""

    extra_id: str
    name: str
    command: str
    remediation: str


@dataclass(frozen=True)
class Preset:
    preset_id: PresetId
    name: str
    steps: Tuple[StepId, ...]
    mode: ExecutionMode
    cache: CacheStrategy
    description: str
    extra_commands: Tuple[ExtraCommand, ...] = ()


VALIDATION_STEPS: Mapping[StepId, ValidationStep] = MappingProxyType(
    {
        StepId.LINT: ValidationStep(
            step_id=StepId.LINT,
            name="ESLint + Prettier",
            command="pnpm lint",
            config_patterns=("eslint.config.js", ".prettierrc", "package.json"),
            description="Code formatting and linting validation",
            remediation="Run: pnpm lint:fix",
        ),
        StepId.TYPE_CHECK: ValidationStep(
            step_id=StepId.TYPE_CHECK,
            name="TypeScript",
            command="pnpm type-check",
            config_patterns=("tsconfig*.json", "apps/*/tsconfig.json", "packages/*/tsconfig.json"),
            description="TypeScript compilation and type checking",
            remediation="Check TypeScript errors in your IDE",
        ),
        StepId.TEST: ValidationStep(
            step_id=StepId.TEST,
            name="Test Suite",
            command="pnpm test",
            config_patterns=("vitest.config.ts", "apps/*/vitest.config.ts", "package.json"),
            description="Unit and integration tests",
            remediation="Run: pnpm test:watch",
            cache_strategy=CacheStrategy.MINIMAL,
        ),
        StepId.BUILD: ValidationStep(
            step_id=StepId.BUILD,
            name="Production Build",
            command="pnpm build",
            config_patterns=("tsconfig*.json", "turbo.json", "package.json"),
            description="Production build verification",
            remediation="Run: pnpm build --verbose and inspect the first compiler error",
        ),
    }
)

VALIDATION_PRESETS: Mapping[PresetId, Preset] = MappingProxyType(
    {
        PresetId.QUICK: Preset(
            preset_id=PresetId.QUICK,
            name="Quick Development Validation",
            steps=(StepId.LINT, StepId.TYPE_CHECK),
            mode=ExecutionMode.PARALLEL,
            cache=CacheStrategy.SMART,
            description="Fast feedback during development",
        ),
        PresetId.CI: Preset(
            preset_id=PresetId.CI,
            name="CI Pipeline Validation",
            steps=(StepId.LINT, StepId.TYPE_CHECK, StepId.TEST, StepId.BUILD),
            mode=ExecutionMode.SEQUENTIAL,
            cache=CacheStrategy.NONE,
            description="Complete validation for CI/CD",
        ),
        PresetId.PRE_COMMIT: Preset(
            preset_id=PresetId.PRE_COMMIT,
            name="Pre-Commit Validation",
            steps=(StepId.LINT, StepId.TYPE_CHECK, StepId.TEST),
            mode=ExecutionMode.SEQUENTIAL,
            cache=CacheStrategy.CONFIG_AWARE,
            description="Balanced validation for pre-commit hooks",
        ),
        PresetId.COMPLIANCE: Preset(
            preset_id=PresetId.COMPLIANCE,
            name="Full Compliance Validation",
            steps=(StepId.LINT, StepId.TYPE_CHECK, StepId.TEST, StepId.BUILD),
            mode=ExecutionMode.SEQUENTIAL,
            cache=CacheStrategy.NONE,
            description="Enterprise-grade validation with mutation testing",
            extra_commands=(
                ExtraCommand(
                    extra_id="mutation",
                    name="Mutation Testing",
                    command="pnpm test:mutation",
                    remediation="Inspect the mutation report for surviving mutants",
                ),
                ExtraCommand(
                    extra_id="security",
                    name="Security Audit",
                    command="pnpm ai:security",
                    remediation="Review the security audit findings",
                ),
            ),
        ),
    }
)


def _token(value: object) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value or "").strip()


def resolve_step_id(value: str) -> StepId:
    token = _token(value)
    try:
        return StepId(token)
    except ValueError:
        raise UsageError("unknown validation step: {}".format(token or "<empty>")) from None


def resolve_preset_id(value: str) -> PresetId:
    token = _token(value)
    try:
        return PresetId(token)
    except ValueError:
        raise UsageError("unknown preset: {}".format(token or "<empty>")) from None


def resolve_cache_strategy(value: str) -> CacheStrategy:
    token = _token(value)
    try:
        return CacheStrategy(token)
    except ValueError:
        raise UsageError("unknown cache strategy: {}".format(token or "<empty>")) from None


def parse_step_list(raw: str) -> List[StepId]:
    """Parse a comma-separated step list; every id must be known and appear once."""

    tokens = [_token(item) for item in str(raw or "").split(",")]
    tokens = [item for item in tokens if item]
    if not tokens:
        raise UsageError("--steps requires at least one step id")
    ids = [resolve_step_id(item) for item in tokens]
    seen = set()
    for item in ids:
        if item in seen:
            raise UsageError("duplicate validation step: {}".format(item.value))
        seen.add(item)
    return ids


def get_preset(preset_id: PresetId) -> Preset:
    return VALIDATION_PRESETS[resolve_preset_id(preset_id)]


def step_ids() -> List[str]:
    return [item.value for item in VALIDATION_STEPS]


def describe_steps(ids: Iterable[StepId]) -> str:
    return " -> ".join(StepId(item).value for item in ids)
