from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Table
from sqlalchemy.engine import Dialect
from sqlalchemy.schema import CreateTable

from .models import Opportunity, Organization, OrganizationUser


class BootstrapError(RuntimeError):
    """Base schema bootstrap error."""


class PlanOrderError(BootstrapError):
    """Raised when a plan lists a step before the tables it depends on."""


class UnknownPlanError(BootstrapError):
    """Raised when a plan name is not registered."""


@dataclass(frozen=True)
class Step:
    name: str
    table: Table
    requires: tuple[str, ...] = ()

    @property
    def target(self) -> str:
        return self.table.name

    @property
    def referenced_tables(self) -> set[str]:
        return {fk.column.table.name for fk in self.table.foreign_keys}

    def statement(self) -> CreateTable:
        return CreateTable(self.table, if_not_exists=True)


@dataclass(frozen=True)
class Plan:
    """Ordered create-if-absent steps; each step may only depend on earlier ones."""

    name: str
    steps: tuple[Step, ...]
    external: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        self.validate()

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(step.target for step in self.steps)

    def validate(self) -> None:
        available = set(self.external)
        for position, step in enumerate(self.steps, start=1):
            if step.target in available:
                raise PlanOrderError(f"Plan {self.name!r} creates {step.target!r} more than once")

            undeclared = sorted(step.referenced_tables - set(step.requires))
            if undeclared:
                raise PlanOrderError(
                    f"Step {step.name!r} references {', '.join(undeclared)} without declaring it as a prerequisite"
                )

            missing = [name for name in step.requires if name not in available]
            if missing:
                raise PlanOrderError(
                    f"Step {position} ({step.name!r}) of plan {self.name!r} requires "
                    f"{', '.join(missing)}, which no earlier step creates"
                )
            available.add(step.target)

    def render_sql(self, dialect: Dialect) -> list[str]:
        return [f"{str(step.statement().compile(dialect=dialect)).strip()};" for step in self.steps]


ORGANIZATIONS = Plan(
    name="organizations",
    external=frozenset({"users"}),
    steps=(
        Step("create_organizations", Organization.__table__),
        Step(
            "create_organization_users",
            OrganizationUser.__table__,
            requires=("organizations", "users"),
        ),
    ),
)

OPPORTUNITIES = Plan(
    name="opportunities",
    external=frozenset({"contacts", "users"}),
    steps=(
        Step("create_opportunities", Opportunity.__table__, requires=("contacts", "users")),
    ),
)

PLANS: dict[str, Plan] = {plan.name: plan for plan in (ORGANIZATIONS, OPPORTUNITIES)}


def get_plan(name: str) -> Plan:
    try:
        return PLANS[name.strip().lower()]
    except KeyError:
        raise UnknownPlanError(f"Unknown bootstrap plan {name!r}; expected one of: {', '.join(sorted(PLANS))}") from None
