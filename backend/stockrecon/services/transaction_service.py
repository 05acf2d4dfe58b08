# Overview: Compensating-transaction orchestrator for multi-step store workflows.

"""
Transaction Orchestrator

Runs named steps strictly in order. When a step raises:
1. no further steps run
2. completed steps are rolled back in reverse order, each receiving the value
   its own execute() returned
3. a rollback that raises is logged and collected in rollback_errors, and the
   unwind continues with the earlier steps

This is a saga, not a database transaction: other writers can observe the
intermediate state, so every rollback must be safe to run against rows that
may have been read or touched in between.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


@dataclass
class TransactionStep:
    name: str
    execute: Callable[[], Any]
    rollback: Optional[Callable[[Any], None]] = None


@dataclass
class TransactionResult:
    success: bool
    results: list[Any] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    rollback_errors: list[str] = field(default_factory=list)
    rolled_back: list[str] = field(default_factory=list)
    failed_step: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "errors": [str(exc) for exc in self.errors],
            "rollback_errors": list(self.rollback_errors),
            "rolled_back": list(self.rolled_back),
            "failed_step": self.failed_step,
        }


class TransactionOrchestrator:
    def execute(self, steps: list[TransactionStep], name: str = "transaction") -> TransactionResult:
        completed: list[tuple[TransactionStep, Any]] = []

        for step in steps:
            logger.debug("%s: executing step %s", name, step.name)
            try:
                value = step.execute()
            except Exception as exc:
                logger.warning("%s: step %s failed: %s", name, step.name, exc)
                result = TransactionResult(
                    success=False,
                    results=[value for _, value in completed],
                    errors=[exc],
                    failed_step=step.name,
                )
                self._unwind(name, completed, result)
                return result
            completed.append((step, value))

        return TransactionResult(success=True, results=[value for _, value in completed])

    def _unwind(self, name: str, completed: list[tuple[TransactionStep, Any]], result: TransactionResult) -> None:
        for step, value in reversed(completed):
            if step.rollback is None:
                continue
            try:
                step.rollback(value)
                result.rolled_back.append(step.name)
                logger.info("%s: rolled back step %s", name, step.name)
            except Exception as exc:
                logger.error("%s: rollback of step %s failed: %s", name, step.name, exc)
                result.rollback_errors.append(f"Rollback of {step.name} failed: {exc}")
