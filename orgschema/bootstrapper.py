from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Optional

from sqlalchemy import Connection, Engine
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from .config import Settings
from .db import build_engine, existing_tables, scoped_connection
from .plans import ORGANIZATIONS, BootstrapError, Plan, Step, get_plan

logger = logging.getLogger("orgschema.bootstrap")


class FailureKind(str, Enum):
    CONNECTION = "connection"
    MISSING_PREREQUISITE = "missing_prerequisite"
    STATEMENT = "statement"
    UNEXPECTED = "unexpected"


class MissingPrerequisiteError(BootstrapError):
    """Raised when a step runs before the tables it references exist."""

    def __init__(self, step: str, missing: list[str]) -> None:
        self.step = step
        self.missing = missing
        super().__init__(f"Step {step!r} requires missing table(s): {', '.join(missing)}")


@dataclass(frozen=True)
class BootstrapFailure:
    kind: FailureKind
    message: str
    step: Optional[str] = None
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class BootstrapResult:
    plan: str
    applied: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failure: Optional[BootstrapFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def apply_step(connection: Connection, step: Step) -> bool:
    """Create the step's table if absent; return True when it was created now."""
    present = existing_tables(connection, (*step.requires, step.target))
    missing = [name for name in step.requires if name not in present]
    if missing:
        raise MissingPrerequisiteError(step.name, missing)

    connection.execute(step.statement())
    return step.target not in present


def _describe(exc: BaseException) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return f"{type(exc.orig).__name__}: {str(exc.orig).strip()}"
    return f"{type(exc).__name__}: {exc}"


def _classify(exc: BaseException, step: Optional[str]) -> FailureKind:
    if isinstance(exc, MissingPrerequisiteError):
        return FailureKind.MISSING_PREREQUISITE
    if step is None and isinstance(exc, SQLAlchemyError):
        return FailureKind.CONNECTION
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return FailureKind.CONNECTION
    if isinstance(exc, SQLAlchemyError):
        return FailureKind.STATEMENT
    return FailureKind.UNEXPECTED


class SchemaBootstrapper:
    """Applies a plan's create-if-absent steps against one database.

    Each step commits on its own, so a failure leaves earlier tables in place.
    The connection is checked out once per run and always returned; an engine
    built by :meth:`from_settings` is owned and disposed after each run.
    """

    def __init__(self, engine: Engine, plan: Plan = ORGANIZATIONS, *, owns_engine: bool = False) -> None:
        self.engine = engine
        self.plan = plan
        self._owns_engine = owns_engine

    @classmethod
    def from_settings(cls, settings: Settings, plan: Optional[Plan] = None) -> "SchemaBootstrapper":
        settings.validate()
        return cls(
            build_engine(settings),
            plan or get_plan(settings.bootstrap_plan),
            owns_engine=True,
        )

    def run(self) -> BootstrapResult:
        applied: list[str] = []
        skipped: list[str] = []
        current: Optional[str] = None

        try:
            with scoped_connection(self.engine, dispose=self._owns_engine) as connection:
                for step in self.plan.steps:
                    current = step.name
                    with connection.begin():
                        created = apply_step(connection, step)
                    (applied if created else skipped).append(step.name)
                    logger.info(
                        "Schema step applied",
                        extra={
                            "event": "step_applied",
                            "plan": self.plan.name,
                            "step": step.name,
                            "table": step.target,
                            "status": "created" if created else "exists",
                        },
                    )
                current = None
        except Exception as exc:
            failure = BootstrapFailure(
                kind=_classify(exc, current),
                message=_describe(exc),
                step=current,
                cause=exc,
            )
            logger.error(
                "Schema bootstrap failed",
                extra={
                    "event": "bootstrap_failed",
                    "plan": self.plan.name,
                    "step": current,
                    "failure_kind": failure.kind.value,
                    "reason": failure.message,
                },
                exc_info=exc if failure.kind is FailureKind.UNEXPECTED else None,
            )
            return BootstrapResult(self.plan.name, tuple(applied), tuple(skipped), failure)

        logger.info(
            "All schema changes applied",
            extra={
                "event": "bootstrap_complete",
                "plan": self.plan.name,
                "db_backend": self.engine.dialect.name,
            },
        )
        return BootstrapResult(self.plan.name, tuple(applied), tuple(skipped))

    def status(self) -> dict[str, bool]:
        with scoped_connection(self.engine, dispose=self._owns_engine) as connection:
            present = existing_tables(connection, self.plan.tables)
        return {table: table in present for table in self.plan.tables}

    def render_sql(self, dialect: Optional[Dialect] = None) -> list[str]:
        return self.plan.render_sql(dialect or self.engine.dialect)
